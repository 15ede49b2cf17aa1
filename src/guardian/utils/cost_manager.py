"""llm cost tracking per analysis and per stage, with an optional spend limit."""

from typing import Optional, Dict, List
from dataclasses import dataclass, field
from datetime import datetime
import json
import threading

from guardian.errors import BudgetExceededError
from guardian.utils.correlation import get_analysis_id


@dataclass
class CostEntry:
    timestamp: str
    stage: str
    analysis_id: str
    iteration: int
    operation: str
    cost: float
    cumulative_cost: float
    metadata: Dict = field(default_factory=dict)


class CostManager:
    """tracks llm spend.

    the per-analysis limit applies to the analysis bound by AnalysisContext, so
    one manager can be shared by concurrent analyses. end_analysis drops the
    per-analysis entries once a verdict is out; totals and stage sums remain.

        cost_mgr = CostManager(max_cost_per_analysis=0.50)
        cost_mgr.start_analysis("a3f9b2c4")
        cost_mgr.log_cost("reasoning", "a3f9b2c4", 0, "generate", 0.012)
        cost_mgr.check_budget()
    """

    def __init__(
        self,
        max_cost_per_analysis: Optional[float] = None,
        max_cost_total: Optional[float] = None
    ):
        self.max_cost_per_analysis = max_cost_per_analysis
        self.max_cost_total = max_cost_total

        # reentrant: summary helpers call each other under the lock
        self._lock = threading.RLock()

        self.total_cost = 0.0
        self.num_calls = 0
        self.cost_log: List[CostEntry] = []
        self.costs_by_analysis: Dict[str, float] = {}
        self.costs_by_stage: Dict[str, float] = {}
        self.current_analysis: Optional[str] = None

    def _resolve(self, analysis_id: Optional[str]) -> Optional[str]:
        return analysis_id or get_analysis_id() or self.current_analysis

    def analysis_cost(self, analysis_id: Optional[str] = None) -> float:
        with self._lock:
            return self.costs_by_analysis.get(self._resolve(analysis_id), 0.0)

    @property
    def current_cost(self) -> float:
        return self.analysis_cost()

    def start_analysis(self, analysis_id: str):
        with self._lock:
            self.current_analysis = analysis_id
            self.costs_by_analysis.setdefault(analysis_id, 0.0)

    def end_analysis(self, analysis_id: str):
        with self._lock:
            self.costs_by_analysis.pop(analysis_id, None)
            self.cost_log = [entry for entry in self.cost_log if entry.analysis_id != analysis_id]
            if self.current_analysis == analysis_id:
                self.current_analysis = None

    def log_cost(
        self,
        stage: str,
        analysis_id: str,
        iteration: int,
        operation: str,
        cost: float,
        metadata: Optional[dict] = None
    ):
        timestamp = datetime.now().isoformat()

        with self._lock:
            self.total_cost += cost
            self.num_calls += 1
            spent = self.costs_by_analysis.get(analysis_id, 0.0) + cost
            self.costs_by_analysis[analysis_id] = spent
            self.costs_by_stage[stage] = self.costs_by_stage.get(stage, 0.0) + cost

            entry = CostEntry(
                timestamp=timestamp,
                stage=stage,
                analysis_id=analysis_id,
                iteration=iteration,
                operation=operation,
                cost=cost,
                cumulative_cost=spent,
                metadata=metadata or {}
            )
            self.cost_log.append(entry)

    def check_budget(self, analysis_id: Optional[str] = None) -> None:
        """raises BudgetExceededError once a limit is reached"""
        with self._lock:
            spent = self.analysis_cost(analysis_id)
            if self.max_cost_per_analysis is not None:
                if spent >= self.max_cost_per_analysis:
                    raise BudgetExceededError(
                        f"Cost ${spent:.4f} exceeds per-analysis limit "
                        f"${self.max_cost_per_analysis:.4f}"
                    )

            if self.max_cost_total is not None:
                if self.total_cost >= self.max_cost_total:
                    raise BudgetExceededError(
                        f"Total cost ${self.total_cost:.4f} exceeds total limit "
                        f"${self.max_cost_total:.4f}"
                    )

    def would_exceed_budget(self, proposed_cost: float, analysis_id: Optional[str] = None) -> bool:
        """call before spending"""
        with self._lock:
            if self.max_cost_per_analysis is not None:
                if (self.analysis_cost(analysis_id) + proposed_cost) >= self.max_cost_per_analysis:
                    return True

            if self.max_cost_total is not None:
                if (self.total_cost + proposed_cost) >= self.max_cost_total:
                    return True

            return False

    def get_total_cost(self) -> float:
        with self._lock:
            return self.total_cost

    def get_costs_by_stage(self) -> Dict[str, float]:
        with self._lock:
            return self.costs_by_stage.copy()

    def get_cost_summary(self) -> Dict:
        with self._lock:
            return {
                "current_analysis": self.current_analysis,
                "current_cost": self.current_cost,
                "total_cost": self.total_cost,
                "costs_by_analysis": self.costs_by_analysis.copy(),
                "costs_by_stage": self.costs_by_stage.copy(),
                "num_calls": self.num_calls,
                "limits": {
                    "max_per_analysis": self.max_cost_per_analysis,
                    "max_total": self.max_cost_total
                }
            }

    def save_to_json(self, filepath: str):
        with self._lock:
            log_copy = list(self.cost_log)
            summary_copy = self.get_cost_summary()

        data = {
            "summary": summary_copy,
            "log": [
                {
                    "timestamp": entry.timestamp,
                    "stage": entry.stage,
                    "analysis_id": entry.analysis_id,
                    "iteration": entry.iteration,
                    "operation": entry.operation,
                    "cost": entry.cost,
                    "cumulative_cost": entry.cumulative_cost,
                    "metadata": entry.metadata
                }
                for entry in log_copy
            ]
        }
        with open(filepath, 'w') as f:
            json.dump(data, f, indent=2)

    def get_average_cost_per_call(self) -> float:
        with self._lock:
            if self.num_calls == 0:
                return 0.0
            return self.total_cost / self.num_calls
