from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

from posecap.pose.posture_metrics import PostureMetrics

logger = logging.getLogger(__name__)

STAGE_KEY = "posecap.stage"
METRICS_KEY = "posecap.metrics"

STAGES = ("welcome", "detecting", "report", "pathA", "pathB")
DEFAULT_STAGE = "welcome"


class StageStore:
	"""
	Persisted app stage and last posture metrics, JSON-serialized under fixed keys.

	Read once at construction; every change is written through immediately.
	"""

	def __init__(self, path: str | Path) -> None:
		self.path = Path(path)
		self._stage: str = DEFAULT_STAGE
		self._metrics: Optional[PostureMetrics] = None
		self._load()

	def _load(self) -> None:
		if not self.path.exists():
			return
		try:
			raw = json.loads(self.path.read_text(encoding="utf-8"))
		except (OSError, ValueError) as e:
			logger.warning("[Store] %s unreadable, using defaults: %r", self.path, e)
			return
		if not isinstance(raw, dict):
			return
		stage = raw.get(STAGE_KEY)
		if isinstance(stage, str) and stage in STAGES:
			self._stage = stage
		metrics = raw.get(METRICS_KEY)
		if isinstance(metrics, dict):
			try:
				self._metrics = PostureMetrics.from_dict(metrics)
			except (TypeError, ValueError) as e:
				logger.warning("[Store] stored metrics ignored: %r", e)

	def _save(self) -> None:
		data: Dict[str, Any] = {
			STAGE_KEY: self._stage,
			METRICS_KEY: self._metrics.to_dict() if self._metrics is not None else None,
		}
		try:
			self.path.parent.mkdir(parents=True, exist_ok=True)
			self.path.write_text(json.dumps(data, indent=2), encoding="utf-8")
		except OSError as e:
			logger.error("[Store] writing %s failed: %r", self.path, e)

	@property
	def stage(self) -> str:
		return self._stage

	@property
	def metrics(self) -> Optional[PostureMetrics]:
		return self._metrics

	def set_stage(self, stage: str) -> None:
		if stage not in STAGES:
			raise ValueError(f"unknown stage {stage!r}")
		if stage == self._stage:
			return
		self._stage = stage
		self._save()

	def set_metrics(self, metrics: Optional[PostureMetrics]) -> None:
		self._metrics = metrics
		self._save()

	def complete_capture(self, metrics: PostureMetrics) -> None:
		"""Store the captured metrics and move to the report stage in one write."""
		self._metrics = metrics
		self._stage = "report"
		self._save()
