# diagnostics.py
# -*- coding: utf-8 -*-

"""
Nhật ký chẩn đoán cho mỗi lượt tra cứu: log dạng text có timestamp
và danh sách step có cấu trúc, đồng thời ghi ra logging.
"""

import logging
import time
from datetime import datetime
from typing import List, Optional

from mstlookup.constants import STEP_STATUSES, STATUS_ERROR, STATUS_WARNING
from mstlookup.models import StepRecord

logger = logging.getLogger(__name__)


class DiagnosticTrail:

    def __init__(self, clock=time.time):
        self._clock = clock
        self.logs: List[str] = []
        self.steps: List[StepRecord] = []

    def _stamp(self) -> str:
        return datetime.fromtimestamp(self._clock()).strftime('%Y-%m-%dT%H:%M:%S')

    def log(self, message: str) -> None:
        self.logs.append(f"[{self._stamp()}] {message}")
        logger.debug(message)

    def step(self, name: str, status: str, message: Optional[str] = None) -> StepRecord:
        if status not in STEP_STATUSES:
            raise ValueError(f"Unknown step status: {status}")

        record = StepRecord(
            name=name,
            status=status,
            message=message,
            timestamp=int(self._clock() * 1000)
        )
        self.steps.append(record)

        line = f"{name}: {status}" + (f" - {message}" if message else "")
        self.logs.append(f"[{self._stamp()}] {line}")

        if status == STATUS_ERROR:
            logger.warning(line)
        elif status == STATUS_WARNING:
            logger.info(line)
        else:
            logger.debug(line)
        return record
