"""
Behavior Models: Training API Server
====================================

HTTP surface over the training pipeline and the model orchestrator.

Endpoints (all under /api/v1/training):
- POST anonymize, anonymize/batch      -> privatized records
- POST generate-synthetic              -> synthetic samples + quality/diversity
- POST calculate-reward                -> reward breakdown
- POST train-model, train-from-telemetry
- POST evaluate-model, deploy-model, rollback-model, monitor-model, run-ab-test
- GET  model-versions, deployed-models
- GET/POST registry                    -> export / import

Failure mapping:
- invalid input or configuration -> 422
- expected lifecycle failures     -> 200 with success=false and an errorCode
- training failures               -> 500

Usage:
    uvicorn behavior_models.api.server:app --reload
"""
import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from ..config import PipelineConfig, configure_logging
from ..contracts.base import ConfigurationError, Result
from ..contracts.data_contracts import (
    AnonymizationConfig,
    RawRecord,
    SyntheticConfig,
    SyntheticSample,
)
from ..contracts.lifecycle_contracts import ABTestConfig, DeploymentConfig
from ..contracts.reward_contracts import RewardInput
from ..orchestration.pipeline import PipelineServices, TrainingPipeline
from .schemas import (
    ABTestRequest,
    AnonymizeRequest,
    BatchAnonymizeRequest,
    DeployRequest,
    EvaluateRequest,
    GenerateSyntheticRequest,
    RawRecordIn,
    RegistryImportRequest,
    RewardRequest,
    RollbackRequest,
    SyntheticSampleIn,
    TrainFromTelemetryRequest,
    TrainModelRequest,
    VersionRequest,
)

logger = logging.getLogger(__name__)


# =============================================================================
# HELPERS
# =============================================================================

def get_services(request: Request) -> PipelineServices:
    return request.app.state.services


def _raw_records(records: List[RawRecordIn]) -> List[RawRecord]:
    return [RawRecord(user_id=r.user_id, data=r.data) for r in records]


def _samples(samples: Optional[List[SyntheticSampleIn]]) -> List[SyntheticSample]:
    return [
        SyntheticSample.from_raw(s.features, quality_score=s.quality_score, synthetic_id=f"api_{i}")
        for i, s in enumerate(samples or [])
    ]


def _respond(result: Result, key: Optional[str] = None) -> dict:
    """Success payload under key (or merged when key is None); failures as data."""
    if result.is_failure:
        return result.error.to_dict()
    payload = result.value.to_dict()
    if key is None:
        return {'success': True, **payload}
    return {'success': True, key: payload}


def _train_failure(exc: Exception) -> HTTPException:
    logger.error("Training request failed: %s", exc)
    return HTTPException(status_code=500, detail=f"Training failed: {exc}")


# =============================================================================
# ROUTES
# =============================================================================

router = APIRouter(prefix="/api/v1/training")


@router.post("/anonymize")
def anonymize(body: AnonymizeRequest, services: PipelineServices = Depends(get_services)):
    config = AnonymizationConfig(body.technique, epsilon=body.privacy_epsilon, k=body.k)
    record = services.anonymizer.anonymize_user_data(body.user_id, body.data, config)
    return {'success': True, 'record': record.to_dict()}


@router.post("/anonymize/batch")
def anonymize_batch(body: BatchAnonymizeRequest, services: PipelineServices = Depends(get_services)):
    config = AnonymizationConfig(body.technique, epsilon=body.privacy_epsilon, k=body.k)
    records = services.anonymizer.batch_anonymize(_raw_records(body.records), config)
    total_loss = sum(r.privacy_loss for r in records)
    return {
        'success': True,
        'summary': {
            'originalCount': len(body.records),
            'anonymizedCount': len(records),
            'technique': config.technique.value,
            'avgPrivacyLoss': total_loss / len(records) if records else 0.0,
        },
        'records': [r.to_dict() for r in records],
    }


@router.post("/generate-synthetic")
def generate_synthetic(body: GenerateSyntheticRequest, services: PipelineServices = Depends(get_services)):
    anonymization = AnonymizationConfig(body.technique, epsilon=body.privacy_epsilon)
    synthesis = SyntheticConfig(body.method, body.sample_count, body.quality_threshold)
    pipeline = TrainingPipeline(services)

    anonymized = pipeline.anonymize(_raw_records(body.records), anonymization)
    samples = pipeline.synthesize(anonymized, synthesis)
    avg_quality = sum(s.quality_score for s in samples) / len(samples) if samples else 0.0
    diversity = services.generator.calculate_diversity_score(samples)

    logger.info(
        "Generated %d samples. Quality: %.3f, Diversity: %.3f", len(samples), avg_quality, diversity
    )
    return {
        'success': True,
        'summary': {
            'method': synthesis.method.value,
            'sourceCount': len(body.records),
            'generatedCount': len(samples),
            'avgQuality': avg_quality,
            'diversityScore': diversity,
        },
        'samples': [s.to_dict() for s in samples],
    }


@router.post("/calculate-reward")
def calculate_reward(body: RewardRequest, services: PipelineServices = Depends(get_services)):
    reward = services.reward_model.calculate_reward(RewardInput(
        sentiment_before=body.sentiment_before,
        sentiment_after=body.sentiment_after,
        engagement_before=body.engagement_before,
        engagement_after=body.engagement_after,
        consent_given=body.consent_given,
        privacy_respected=body.privacy_respected,
        action_type=body.action_type,
        action_timing=body.action_timing,
        user_feedback=body.user_feedback,
        context_relevance=body.context_relevance,
    ))
    return {'success': True, 'reward': reward.to_dict()}


@router.post("/train-model")
def train_model(body: TrainModelRequest, services: PipelineServices = Depends(get_services)):
    try:
        version = services.orchestrator.train_new_model(
            body.model_type, _samples(body.samples), body.epochs, hyperparams=body.hyperparams
        )
    except ConfigurationError:
        raise
    except Exception as exc:
        raise _train_failure(exc) from exc
    return {'success': True, 'version': version.to_dict()}


@router.post("/train-from-telemetry")
def train_from_telemetry(body: TrainFromTelemetryRequest, services: PipelineServices = Depends(get_services)):
    anonymization = AnonymizationConfig(body.technique, epsilon=body.privacy_epsilon)
    synthesis = SyntheticConfig(body.method, body.sample_count, body.quality_threshold)
    try:
        run = TrainingPipeline(services).run(
            _raw_records(body.records),
            anonymization,
            synthesis,
            body.model_type,
            body.epochs,
            hyperparams=body.hyperparams,
        )
    except ConfigurationError:
        raise
    except Exception as exc:
        raise _train_failure(exc) from exc
    return {'success': True, **run.to_dict()}


@router.post("/evaluate-model")
def evaluate_model(body: EvaluateRequest, services: PipelineServices = Depends(get_services)):
    result = services.orchestrator.evaluate_model(body.version_id, _samples(body.test_samples))
    return _respond(result, 'evaluation')


@router.post("/deploy-model")
def deploy_model(body: DeployRequest, services: PipelineServices = Depends(get_services)):
    config = DeploymentConfig(body.deployment_type, traffic_percentage=body.traffic_percentage)
    return _respond(services.orchestrator.deploy_model(body.version_id, config))


@router.post("/rollback-model")
def rollback_model(body: RollbackRequest, services: PipelineServices = Depends(get_services)):
    return _respond(services.orchestrator.rollback_model(body.version_id, body.reason))


@router.post("/monitor-model")
def monitor_model(body: VersionRequest, services: PipelineServices = Depends(get_services)):
    return _respond(services.orchestrator.monitor_deployed_model(body.version_id))


@router.post("/run-ab-test")
def run_ab_test(body: ABTestRequest, services: PipelineServices = Depends(get_services)):
    config = ABTestConfig(
        control_version_id=body.control_version_id,
        test_version_id=body.test_version_id,
        control_traffic=body.traffic_split.control,
        test_traffic=body.traffic_split.test,
        duration=body.duration,
    )
    return _respond(services.orchestrator.run_ab_test(config))


@router.get("/model-versions")
def model_versions(
    status: Optional[str] = None,
    model_type: Optional[str] = Query(None, alias="modelType"),
    services: PipelineServices = Depends(get_services),
):
    versions = services.orchestrator.list_versions(status=status, model_type=model_type)
    return {'success': True, 'versions': [v.to_dict() for v in versions]}


@router.get("/deployed-models")
def deployed_models(services: PipelineServices = Depends(get_services)):
    versions = services.orchestrator.get_deployed_models()
    return {'success': True, 'versions': [v.to_dict() for v in versions]}


@router.get("/registry")
def export_registry(services: PipelineServices = Depends(get_services)):
    return {'success': True, **services.orchestrator.export_registry()}


@router.post("/registry")
def import_registry(body: RegistryImportRequest, services: PipelineServices = Depends(get_services)):
    try:
        services.orchestrator.import_registry(body.model_dump())
    except (KeyError, TypeError, ValueError) as exc:
        raise ConfigurationError(f"Malformed registry export: {exc}") from exc
    return {
        'success': True,
        'modelCount': services.orchestrator.registry.artifact_count,
        'historyCount': services.orchestrator.history.entry_count,
    }


# =============================================================================
# APPLICATION
# =============================================================================

def create_app(services: Optional[PipelineServices] = None) -> FastAPI:
    """Build the application; services default to a container built from the environment."""
    if services is None:
        config = PipelineConfig.from_env()
        configure_logging(config.log_level)
        services = PipelineServices.build(config)

    app = FastAPI(
        title="Behavior Models Training API",
        version="0.1.0",
        description="Anonymize, synthesize, train and manage behavioral model versions",
    )
    app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["GET", "POST"],
        allow_headers=["*"],
    )

    @app.exception_handler(ConfigurationError)
    async def configuration_error_handler(request: Request, exc: ConfigurationError):
        return JSONResponse(
            status_code=422,
            content={'success': False, 'message': str(exc), 'errorCode': 'CONFIGURATION_ERROR'},
        )

    @app.get("/health")
    def health_check():
        """System status."""
        return {
            'status': 'online',
            'deployedModels': len(app.state.services.orchestrator.get_deployed_models()),
        }

    app.include_router(router)
    return app


app = create_app()
