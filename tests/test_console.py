from __future__ import annotations

import pytest

from releaseagent import NO_TIMEOUT, StepContext, StepError, StepRunner, root_step
from releaseagent.ui.console import Console


async def fail(ctx: StepContext) -> None:
    raise RuntimeError("oops")


async def failed_runner() -> StepRunner:
    runner = StepRunner()
    with pytest.raises(StepError):
        await runner.execute([root_step("p", NO_TIMEOUT, fail)])
    return runner


@pytest.mark.asyncio
async def test_failures_show_traceback_in_debug(capsys) -> None:
    runner = await failed_runner()

    Console(debug=True).print_failures(runner.states)

    out = capsys.readouterr().out
    assert "STEP FAILED: p" in out
    assert "step 'p' failed: oops" in out
    assert "Traceback (most recent call last)" in out
    assert "in fail" in out


@pytest.mark.asyncio
async def test_failures_show_first_line_without_debug(capsys) -> None:
    runner = await failed_runner()

    Console().print_failures(runner.states)

    out = capsys.readouterr().out
    assert "Error: step 'p' failed: oops" in out
    assert "Traceback" not in out
