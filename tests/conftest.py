from __future__ import annotations

from concurrent.futures import Executor
from types import SimpleNamespace

import pytest

from shadow_prompt.answers.classifier import AnswerClassifier
from shadow_prompt.capture.adapter import InMemoryCaptureAdapter
from shadow_prompt.capture.presenter import RecordingPresenter
from shadow_prompt.config import UsageConfig
from shadow_prompt.core.orchestrator import OrchestrationCore
from shadow_prompt.providers.chain import ProviderChain
from shadow_prompt.usage import UsageTracker

from fakes import InlineExecutor


@pytest.fixture
def make_core(tmp_path):
    def _make(
        providers,
        *,
        clipboard: str | None = "What is the capital of France?",
        daily_limit: int | None = 100,
        executor: Executor | None = None,
        retriever=None,
        visuals=None,
        ocr_text: str = "",
        ocr_error: str | None = None,
        searcher=None,
    ) -> SimpleNamespace:
        capture = InMemoryCaptureAdapter(clipboard, ocr_text=ocr_text, ocr_error=ocr_error)
        presenter = RecordingPresenter()
        usage = UsageTracker(
            UsageConfig(daily_limit=daily_limit, db_path=str(tmp_path / "usage.db"))
        )
        terminated: list[bool] = []
        completed: list = []

        def _post(event) -> None:
            completed.append(event)
            core.handle(event)

        core = OrchestrationCore(
            chain=ProviderChain(providers),
            classifier=AnswerClassifier(),
            capture=capture,
            presenter=presenter,
            usage=usage,
            executor=executor or InlineExecutor(),
            visuals=visuals,
            retriever=retriever,
            searcher=searcher,
            post=_post,
            on_terminate=lambda: terminated.append(True),
        )
        return SimpleNamespace(
            core=core,
            capture=capture,
            presenter=presenter,
            usage=usage,
            terminated=terminated,
            completed=completed,
        )

    return _make
