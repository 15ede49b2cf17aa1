"""
Analysis Logger

Dual-layer logging (raw JSON files + SQLite) for the analysis pipeline.

The logger captures:
- AI calls (prompt, thinking, output, cost, timing) per stage
- Stage decisions (escalate/stop, reasoning, confidence)
- Agent tool calls
- Final verdicts
- Errors
"""

import json
import logging
import sqlite3
import threading
from pathlib import Path
from datetime import datetime
from typing import Dict, Any, Optional, List

from guardian.config import config
from guardian.utils.logging.types import LogCategory, LogEntry
from guardian.utils.correlation import get_analysis_id

logger = logging.getLogger(__name__)


class AnalysisLogger:
    """
    Usage:
        analysis_log = AnalysisLogger(log_dir=tmp_path)
        analysis_log.log_ai_call("reasoning", prompt="...", response="...", cost=0.01)
        analysis_log.log_stage_decision("triage", decision="escalate", reasoning="...", confidence=0.6)
    """

    def __init__(self, log_dir: Optional[Path] = None, use_sqlite: Optional[bool] = None):
        self.logs_dir = Path(log_dir) if log_dir is not None else config.LOGS_DIR
        self.raw_dir = self.logs_dir / "raw"
        self.db_path = self.logs_dir / "analytics.db"
        self.use_sqlite = config.LOG_TO_SQLITE if use_sqlite is None else use_sqlite

        # sqlite connections are per call, writes are serialized
        self._write_lock = threading.Lock()
        self._sequence = 0

        for category in LogCategory:
            (self.raw_dir / category.value).mkdir(parents=True, exist_ok=True)

        if self.use_sqlite:
            self._init_database()

    def _init_database(self):
        with sqlite3.connect(str(self.db_path)) as conn:
            cursor = conn.cursor()

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS ai_calls (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    analysis_id TEXT,
                    stage TEXT NOT NULL,
                    iteration INTEGER,
                    prompt_tokens INTEGER,
                    output_tokens INTEGER,
                    thinking_tokens INTEGER,
                    cost REAL,
                    duration_seconds REAL,
                    model TEXT,
                    metadata TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS stage_decisions (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    analysis_id TEXT,
                    stage TEXT NOT NULL,
                    decision TEXT NOT NULL,
                    reasoning TEXT,
                    confidence REAL,
                    findings_count INTEGER,
                    metadata TEXT
                )
            """)

            cursor.execute("""
                CREATE TABLE IF NOT EXISTS errors (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    timestamp TEXT NOT NULL,
                    analysis_id TEXT,
                    component TEXT NOT NULL,
                    error_type TEXT NOT NULL,
                    error_message TEXT NOT NULL,
                    context TEXT
                )
            """)

            cursor.execute("CREATE INDEX IF NOT EXISTS idx_ai_calls_analysis ON ai_calls(analysis_id)")
            cursor.execute("CREATE INDEX IF NOT EXISTS idx_ai_calls_stage ON ai_calls(stage)")

            conn.commit()

    def _now(self) -> str:
        return datetime.now().isoformat()

    def _next_sequence(self) -> int:
        with self._write_lock:
            self._sequence += 1
            return self._sequence

    def _filename(self, *parts: str) -> str:
        label = "_".join(p for p in parts if p)
        return f"{datetime.now().strftime('%Y-%m-%d')}_{label}_{self._next_sequence():04d}.json"

    def _save_json(self, category: LogCategory, filename: str, data: Dict[str, Any]) -> Path:
        analysis_id = get_analysis_id()
        if analysis_id and "analysis_id" not in data:
            data["analysis_id"] = analysis_id

        filepath = self.raw_dir / category.value / filename
        with open(filepath, 'w', encoding="utf-8") as f:
            json.dump(data, f, indent=2, default=str)
        return filepath

    def _insert(self, sql: str, params: tuple):
        if not self.use_sqlite:
            return
        with self._write_lock:
            with sqlite3.connect(str(self.db_path)) as conn:
                conn.execute(sql, params)
                conn.commit()

    def log_ai_call(
        self,
        stage: str,
        prompt: str,
        response: str,
        thinking: Optional[str] = None,
        cost: float = 0.0,
        duration_seconds: float = 0.0,
        model: str = "",
        prompt_tokens: int = 0,
        output_tokens: int = 0,
        thinking_tokens: int = 0,
        iteration: int = 0,
        metadata: Optional[Dict[str, Any]] = None
    ):
        """
        Saves to:
        - JSON: raw/ai_calls/YYYY-MM-DD_<analysis>_<stage>_NNNN.json
        - SQLite: ai_calls table
        """
        if not (config.ENABLE_LOGGING and config.LOG_AI_CALLS):
            return

        timestamp = self._now()
        analysis_id = get_analysis_id()

        json_data = {
            "timestamp": timestamp,
            "stage": stage,
            "iteration": iteration,
            "prompt": prompt,
            "response": response,
            "thinking": thinking,
            "cost": cost,
            "duration_seconds": duration_seconds,
            "model": model,
            "tokens": {
                "prompt": prompt_tokens,
                "output": output_tokens,
                "thinking": thinking_tokens,
            },
            "metadata": metadata or {}
        }
        self._save_json(LogCategory.AI_CALL, self._filename(analysis_id, stage), json_data)

        self._insert("""
            INSERT INTO ai_calls
            (timestamp, analysis_id, stage, iteration, prompt_tokens, output_tokens,
             thinking_tokens, cost, duration_seconds, model, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            timestamp, analysis_id, stage, iteration, prompt_tokens, output_tokens,
            thinking_tokens, cost, duration_seconds, model, json.dumps(metadata or {}, default=str)
        ))

    def log_stage_decision(
        self,
        stage: str,
        decision: str,  # "escalate", "stop", "skip"
        reasoning: str,
        confidence: float,
        findings_count: int = 0,
        metadata: Optional[Dict[str, Any]] = None
    ):
        if not (config.ENABLE_LOGGING and config.LOG_DECISIONS):
            return

        timestamp = self._now()
        analysis_id = get_analysis_id()

        json_data = {
            "timestamp": timestamp,
            "stage": stage,
            "decision": decision,
            "reasoning": reasoning,
            "confidence": confidence,
            "findings_count": findings_count,
            "metadata": metadata or {}
        }
        self._save_json(LogCategory.DECISION, self._filename(analysis_id, stage, "decision"), json_data)

        self._insert("""
            INSERT INTO stage_decisions
            (timestamp, analysis_id, stage, decision, reasoning, confidence, findings_count, metadata)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            timestamp, analysis_id, stage, decision, reasoning, confidence, findings_count,
            json.dumps(metadata or {}, default=str)
        ))

    def log_tool_call(
        self,
        tool_name: str,
        tool_input: Dict[str, Any],
        output: Any,
        status: str,
        iteration: int,
        duration_seconds: float = 0.0,
    ):
        if not config.ENABLE_LOGGING:
            return
        json_data = {
            "timestamp": self._now(),
            "tool": tool_name,
            "input": tool_input,
            "output": output,
            "status": status,
            "iteration": iteration,
            "duration_seconds": duration_seconds,
        }
        self._save_json(LogCategory.TOOL_CALL, self._filename(get_analysis_id(), tool_name), json_data)

    def log_result(self, result_data: Dict[str, Any]):
        if not config.ENABLE_LOGGING:
            return
        self._save_json(LogCategory.RESULT, self._filename(get_analysis_id(), "result"), dict(result_data))

    def log_error(
        self,
        component: str,
        error_type: str,
        error_message: str,
        context: Optional[Dict[str, Any]] = None
    ):
        timestamp = self._now()
        analysis_id = get_analysis_id()

        payload = {
            "timestamp": timestamp,
            "component": component,
            "error_type": error_type,
            "error_message": error_message,
            "context": context or {}
        }
        self._save_json(LogCategory.ERROR, self._filename(analysis_id, component, "error"), payload)

        self._insert(
            """
            INSERT INTO errors
            (timestamp, analysis_id, component, error_type, error_message, context)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (timestamp, analysis_id, component, error_type, error_message, json.dumps(context or {}, default=str))
        )

        self.error(f"{component} failed during {error_type}: {error_message}")

    def query_costs(self, analysis_id: Optional[str] = None) -> List[Dict[str, Any]]:
        """per-stage totals for one analysis, or per-analysis totals overall"""
        with sqlite3.connect(str(self.db_path)) as conn:
            cursor = conn.cursor()

            if analysis_id:
                cursor.execute("""
                    SELECT stage, SUM(cost) as total_cost, COUNT(*) as num_calls
                    FROM ai_calls
                    WHERE analysis_id = ?
                    GROUP BY stage
                """, (analysis_id,))
            else:
                cursor.execute("""
                    SELECT analysis_id, SUM(cost) as total_cost, COUNT(*) as num_calls
                    FROM ai_calls
                    GROUP BY analysis_id
                """)

            results = [
                {
                    "name": row[0],
                    "total_cost": row[1],
                    "num_calls": row[2]
                }
                for row in cursor.fetchall()
            ]

        return results

    def query_decisions(self, analysis_id: str) -> List[LogEntry]:
        with sqlite3.connect(str(self.db_path)) as conn:
            cursor = conn.cursor()
            cursor.execute("""
                SELECT timestamp, stage, decision, reasoning, confidence, findings_count, metadata
                FROM stage_decisions
                WHERE analysis_id = ?
                ORDER BY id
            """, (analysis_id,))
            rows = cursor.fetchall()

        return [
            LogEntry(
                timestamp=row[0],
                category=LogCategory.DECISION.value,
                event_type=row[2],
                stage=row[1],
                analysis_id=analysis_id,
                iteration=None,
                data={"reasoning": row[3], "confidence": row[4], "findings_count": row[5]},
                metadata=json.loads(row[6] or "{}"),
            )
            for row in rows
        ]

    def _prefixed(self, message: str) -> str:
        analysis_id = get_analysis_id()
        return f"[analysis:{analysis_id}] {message}" if analysis_id else message

    def debug(self, message: str):
        if config.ENABLE_LOGGING:
            logger.debug(self._prefixed(message))

    def info(self, message: str):
        if config.ENABLE_LOGGING:
            logger.info(self._prefixed(message))

    def warning(self, message: str):
        if config.ENABLE_LOGGING:
            logger.warning(self._prefixed(message))

    def error(self, message: str):
        logger.error(self._prefixed(message))
