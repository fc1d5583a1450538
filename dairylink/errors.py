"""Device protocol error taxonomy

Raised by the decoder, normalizer, resolver and model layers. The route layer
is the only place these are turned into HTTP responses, through the
endpoint's ResponsePolicy.
"""


class DeviceProtocolError(Exception):
    """Base class for every failure a device request can end in"""

    def __init__(self, message='', **context):
        super().__init__(message)
        self.message = message
        self.context = context


class DecodeError(DeviceProtocolError):
    """No command string in the request, or nothing left after stripping"""


class TenantNotFound(DeviceProtocolError):
    """Tenant key is unknown or malformed (callers cannot tell which)"""


class MalformedCommand(DeviceProtocolError):
    """Wrong field count or an ungrammatical field"""

    def __init__(self, message='', field=None, **context):
        super().__init__(message, **context)
        self.field = field


class EntityNotFound(DeviceProtocolError):
    """Society or machine could not be resolved in the tenant schema"""

    def __init__(self, message='', entity=None, **context):
        super().__init__(message, **context)
        self.entity = entity


class NotSet(DeviceProtocolError):
    """Domain "nothing to deliver" condition (no active correction, credential
    flag unset, no assigned rate chart, empty roster)"""


class RateChartConflict(Exception):
    """An active chart already holds the (society, channel) slot"""

    def __init__(self, society_id, channel, existing_chart_id):
        super().__init__(
            f"Society {society_id} already has an active {channel} rate chart "
            f"(chart {existing_chart_id}). Replace it explicitly to continue."
        )
        self.society_id = society_id
        self.channel = channel
        self.existing_chart_id = existing_chart_id
