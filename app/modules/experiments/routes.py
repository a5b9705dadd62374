from fastapi import APIRouter, Depends, Query
from app.database.gateway import AccessStoreGateway, get_gateway
from app.modules.experiments.schemas import (
    DataRequest, DataResponse, ExperimentSummaryResponse, MetadataRequest, MetadataResponse
)
from app.modules.experiments.service import ExperimentDataService, ExperimentMetadataService

router = APIRouter(prefix="/experiments", tags=["experiments"])


def get_metadata_service(gateway: AccessStoreGateway = Depends(get_gateway)) -> ExperimentMetadataService:
    return ExperimentMetadataService(gateway)


def get_data_service(gateway: AccessStoreGateway = Depends(get_gateway)) -> ExperimentDataService:
    return ExperimentDataService(gateway)


@router.get("", response_model=ExperimentSummaryResponse)
async def summarize_experiments(
    project_id: str = Query(...),
    dataset_name: str = Query(...),
    table_id: str = Query(...),
    service: ExperimentMetadataService = Depends(get_metadata_service)
):
    """Time range and working sensors of every experiment in a table"""
    experiments = await service.summarize_table(project_id, dataset_name, table_id)
    return ExperimentSummaryResponse(success=True, table_id=table_id, experiments=experiments)


@router.post("/metadata", response_model=MetadataResponse)
async def get_experiment_metadata(
    request: MetadataRequest,
    service: ExperimentMetadataService = Depends(get_metadata_service)
):
    """Available sensors and time range for a batch of experiments"""
    metadata = await service.resolve_metadata(request.experiments)
    return MetadataResponse(success=True, metadata=metadata)


@router.post("/data", response_model=DataResponse)
async def get_experiment_data(
    request: DataRequest,
    service: ExperimentDataService = Depends(get_data_service)
):
    """Selected sensor fields of one experiment within a time range"""
    data = await service.fetch_data(request)
    return DataResponse(success=True, data=data)
