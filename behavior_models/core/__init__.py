"""
Core Subpackage

Learning components:
- Reward model (weighted multi-component reward)
- RL policy trainer (tabular TD learning on synthetic samples)
"""

from .reward_model import RewardModel
from .policy_trainer import RLPolicyTrainer, extract_state, state_key

__all__ = ['RewardModel', 'RLPolicyTrainer', 'extract_state', 'state_key']
