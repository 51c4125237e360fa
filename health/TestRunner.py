# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-12
# Description: TestRunner
# -----------------------------------------------------------------------------

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from utility.logging_utils import get_class_logger


class TestRunner:
    """
    Runs smoke checks against every external dependency and reports a
    consolidated result.

    Checks included:
      - embedding      (Azure OpenAI embeddings)
      - chat           (OpenAI chat completion)
      - interest_store (SQL catalog + Chroma collection)
      - mission_store  (SQL catalog + Chroma collection)
      - exclusion_cache (Redis ping)
    """

    __test__ = False  # not a pytest class

    def __init__(
            self,
            *,
            embedder: Any,
            chat: Any,
            interest_store: Any,
            mission_store: Any,
            cache: Any,
            logger: Optional[logging.Logger] = None,
    ):
        self.logger = logger or get_class_logger(self.__class__)
        self.checks: Dict[str, Callable[[], Awaitable[bool]]] = {
            "embedding": embedder.healthcheck,
            "chat": chat.healthcheck,
            "interest_store": interest_store.test_connection,
            "mission_store": mission_store.test_connection,
            "exclusion_cache": cache.test_connection,
        }
        self.logger.info("Initialising SmokeTestRunner (%d checks)", len(self.checks))

    # -------------------------------------------------------------------------
    async def run_all(self) -> Dict[str, bool]:
        """
        Run all configured smoke checks sequentially.

        :return: Dict mapping check names to True/False.
        """
        self.logger.info("Starting smoke test suite")
        results: Dict[str, bool] = {}

        for name, check in self.checks.items():
            try:
                self.logger.info("Running %s check", name)
                ok = bool(await check())
            except Exception as e:
                self.logger.exception("%s check raised an exception: %s", name, e)
                ok = False
            results[name] = ok
            self._log_result(name, ok)

        self._log_summary(results)
        return results

    # -------------------------------------------------------------------------
    def _log_result(self, name: str, ok: bool) -> None:
        if ok:
            self.logger.info("%s: PASS", name)
        else:
            self.logger.error("%s: FAIL", name)

    def _log_summary(self, results: Dict[str, bool]) -> None:
        total = len(results)
        passed = sum(1 for v in results.values() if v)
        failed = total - passed

        self.logger.info("Smoke test summary: %d total, %d passed, %d failed", total, passed, failed)

        for name, ok in results.items():
            status = "PASS" if ok else "FAIL"
            self.logger.info("  %s: %s", name, status)
