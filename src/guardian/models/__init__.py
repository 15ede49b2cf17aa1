from .findings import (
    Category,
    Severity,
    RiskRating,
    Provenance,
    ConfidenceLevel,
    Finding,
    ModuleVerification,
    AnalysisResult,
    coerce_category,
    coerce_severity,
    clamp_confidence,
)
from .transaction import (
    CallDescriptor,
    ChangeType,
    Event,
    FunctionPath,
    SimulatedEffects,
    StateChange,
    parse_function_path,
)
from .values import (
    ArgValue,
    BoolValue,
    ListValue,
    MapValue,
    NumberValue,
    TextValue,
    numeric_value,
    to_plain,
    to_value,
)

__all__ = [
    'Category',
    'Severity',
    'RiskRating',
    'Provenance',
    'ConfidenceLevel',
    'Finding',
    'ModuleVerification',
    'AnalysisResult',
    'coerce_category',
    'coerce_severity',
    'clamp_confidence',
    'CallDescriptor',
    'ChangeType',
    'Event',
    'FunctionPath',
    'SimulatedEffects',
    'StateChange',
    'parse_function_path',
    'ArgValue',
    'BoolValue',
    'ListValue',
    'MapValue',
    'NumberValue',
    'TextValue',
    'numeric_value',
    'to_plain',
    'to_value',
]
