# -----------------------------------------------------------------------------
# Author: Frank Campbell Bogle
# Created: 2026-10-14
# Description: test_health_runner.py
# -----------------------------------------------------------------------------
import pytest

from health.TestRunner import TestRunner
from main import build_parser


class FakeDependency:
    def __init__(self, result=True, error=None):
        self.result = result
        self.error = error

    async def healthcheck(self):
        if self.error:
            raise self.error
        return self.result

    async def test_connection(self):
        return await self.healthcheck()


@pytest.mark.asyncio
async def test_runner_reports_each_dependency(interest_store, mission_store, exclusion_cache):
    runner = TestRunner(
        embedder=FakeDependency(),
        chat=FakeDependency(error=ConnectionError("down")),
        interest_store=interest_store,
        mission_store=mission_store,
        cache=exclusion_cache,
    )

    results = await runner.run_all()

    assert results == {
        "embedding": True,
        "chat": False,
        "interest_store": True,
        "mission_store": True,
        "exclusion_cache": True,
    }


def test_cli_parses_label_batch_limit():
    args = build_parser().parse_args(["label-batch", "--limit", "25"])
    assert (args.command, args.limit) == ("label-batch", 25)


def test_cli_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
