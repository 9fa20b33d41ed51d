from collections.abc import Mapping
from typing import Any

from google.cloud import monitoring_v3
from google.protobuf.json_format import MessageToDict, ParseDict, ParseError
from google.protobuf.message import Message as ProtobufMessage
import proto
from pydantic import BaseModel

from monitor.exceptions import InvalidArgument
from monitor.schemas import (
    CreateMetricDescriptorRequest,
    CreateTimeSeriesRequest,
    DeleteMetricDescriptorRequest,
    GetMetricDescriptorRequest,
    GetMonitoredResourceDescriptorRequest,
    ListMetricDescriptorsRequest,
    ListMonitoredResourceDescriptorsRequest,
    ListTimeSeriesRequest,
    MetricDescriptor,
    MonitoredResourceDescriptor,
    TimeSeries,
)

_REQUEST_MESSAGES: dict[type[BaseModel], type[proto.Message]] = {
    CreateMetricDescriptorRequest: monitoring_v3.CreateMetricDescriptorRequest,
    ListMetricDescriptorsRequest: monitoring_v3.ListMetricDescriptorsRequest,
    GetMetricDescriptorRequest: monitoring_v3.GetMetricDescriptorRequest,
    DeleteMetricDescriptorRequest: monitoring_v3.DeleteMetricDescriptorRequest,
    CreateTimeSeriesRequest: monitoring_v3.CreateTimeSeriesRequest,
    ListTimeSeriesRequest: monitoring_v3.ListTimeSeriesRequest,
    ListMonitoredResourceDescriptorsRequest: (
        monitoring_v3.ListMonitoredResourceDescriptorsRequest
    ),
    GetMonitoredResourceDescriptorRequest: (
        monitoring_v3.GetMonitoredResourceDescriptorRequest
    ),
}


def to_message(request: BaseModel) -> proto.Message:
    message_cls = _REQUEST_MESSAGES.get(type(request))
    if message_cls is None:
        raise TypeError(f'Unsupported request type: {type(request).__name__}')

    payload = request.model_dump(mode='json', exclude_none=True)
    try:
        pb = ParseDict(payload, message_cls.pb()())
    except ParseError as e:
        raise InvalidArgument(str(e), 'request') from e
    return message_cls.wrap(pb)


def _message_to_dict(message: Any) -> dict[str, Any]:
    if isinstance(message, Mapping):
        return dict(message)
    if isinstance(message, proto.Message):
        message = type(message).pb(message)
    if isinstance(message, ProtobufMessage):
        return MessageToDict(
            message,
            use_integers_for_enums=False,
            preserving_proto_field_name=True,
        )
    raise TypeError(f'Unsupported message type: {type(message).__name__}')


def metric_descriptor_from_message(message: Any) -> MetricDescriptor:
    if isinstance(message, MetricDescriptor):
        return message
    return MetricDescriptor.model_validate(_message_to_dict(message))


def resource_descriptor_from_message(message: Any) -> MonitoredResourceDescriptor:
    if isinstance(message, MonitoredResourceDescriptor):
        return message
    return MonitoredResourceDescriptor.model_validate(_message_to_dict(message))


def time_series_from_message(message: Any) -> TimeSeries:
    if isinstance(message, TimeSeries):
        return message
    return TimeSeries.model_validate(_message_to_dict(message))
