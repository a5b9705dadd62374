from pydantic import BaseModel
from typing import Optional, List, Dict, Any


class ExperimentDescriptor(BaseModel):
    project_id: str
    dataset_name: str
    table_id: str
    experiment_name: str
    mac_address: Optional[str] = None

    @property
    def table_name(self) -> str:
        """Bare table name; table_id may also arrive fully qualified"""
        return self.table_id.split(".")[-1]


class TimeRange(BaseModel):
    first_timestamp: Optional[str] = None
    last_timestamp: Optional[str] = None


class ExperimentMetadata(BaseModel):
    table_id: str
    experiment_name: str
    mac_address: Optional[str] = None
    time_range: TimeRange
    available_sensors: List[str]
    error: Optional[str] = None


class MetadataRequest(BaseModel):
    experiments: Optional[Any] = None


class MetadataResponse(BaseModel):
    success: bool = True
    metadata: List[ExperimentMetadata]


class DataTimeRange(BaseModel):
    start: Optional[Any] = None
    end: Optional[Any] = None


class DataRequest(BaseModel):
    project_id: Optional[str] = None
    dataset_name: Optional[str] = None
    table_id: Optional[str] = None
    experiment_name: Optional[str] = None
    mac_address: Optional[str] = None
    time_range: Optional[DataTimeRange] = None
    fields: Optional[List[str]] = None


class DataResponse(BaseModel):
    success: bool = True
    data: List[Dict[str, Any]]


class ExperimentSummary(BaseModel):
    experiment_name: str
    first_timestamp: Optional[str] = None
    last_timestamp: Optional[str] = None
    available_sensors: List[str]


class ExperimentSummaryResponse(BaseModel):
    success: bool = True
    table_id: str
    experiments: List[ExperimentSummary]
