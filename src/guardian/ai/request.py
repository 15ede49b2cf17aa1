from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from guardian.models import CallDescriptor, Finding, ListValue, MapValue, SimulatedEffects


@dataclass(frozen=True)
class PipelineRequest:
    """what the ai stages and the investigator see of one analysis"""
    call: CallDescriptor
    effects: Optional[SimulatedEffects] = None
    estimated_value_usd: Optional[float] = None
    prior_findings: Tuple[Finding, ...] = field(default_factory=tuple)

    @property
    def function(self) -> str:
        return self.call.function

    @property
    def module_address(self) -> str:
        return self.call.module_address

    @property
    def events(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self.effects.events] if self.effects else []

    @property
    def state_changes(self) -> List[Dict[str, Any]]:
        return [c.to_dict() for c in self.effects.state_changes] if self.effects else []

    @property
    def gas_used(self) -> int:
        return self.effects.gas_used if self.effects else 0

    @property
    def value_usd(self) -> float:
        if self.estimated_value_usd is not None:
            return self.estimated_value_usd
        return self.call.estimated_value_usd or 0.0

    @property
    def complexity(self) -> int:
        score = len(self.call.arguments)
        for arg in self.call.arguments:
            if isinstance(arg, ListValue):
                score += len(arg)
            elif isinstance(arg, MapValue):
                score += 2
        if self.effects:
            score += 2 * len(self.effects.events)
            score += 3 * len(self.effects.state_changes)
        score += len(self.call.type_arguments)
        return score
