class ParkingError(Exception):
    """Base class for errors raised by the pricing and aggregation helpers."""


class TariffNotFoundError(ParkingError):
    def __init__(self, lot_id, period_type, template_id=None, segment=None):
        self.lot_id = lot_id
        self.period_type = period_type
        self.template_id = template_id
        self.segment = segment
        target = f"template {template_id}" if template_id is not None else f"segment {segment}"
        super().__init__(
            f"No tariff configured for lot {lot_id}, {target}, period type {period_type}."
        )


class InvalidPeriodTypeError(ParkingError):
    def __init__(self, tag, allowed):
        self.tag = tag
        self.allowed = tuple(allowed)
        super().__init__(
            f"Invalid period type '{tag}'. Expected one of: {', '.join(self.allowed)}."
        )
