"""
Unit Tests for DraftGenerator

Tests per-group generation, failure isolation, iterative updates and
timeouts.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import asyncio

import pytest

from bulk_import.ai_core.capabilities import GeneratedDraft
from bulk_import.ai_core.generation import DraftGenerator
from bulk_import.ai_core.stub import StubCapabilities
from bulk_import.errors import BulkImportError, DraftGenerationError
from bulk_import.models.group import Group, GroupKind, GroupStatus
from bulk_import.models.sources import DocumentSource
from bulk_import.services.source_collector import SourceTextLoader
from bulk_import.services.working_set import WorkingSet


def urls(prefix, count):
    return [f"https://{prefix}.example.com/page-{i}" for i in range(count)]


@pytest.fixture
def loader():
    loader = SourceTextLoader(fetch_timeout=1, max_chars=1000)
    for prefix in ("alpha", "beta", "gamma", "wiki"):
        for url in urls(prefix, 5):
            loader.seed(url, f"Fact from {url}")
    return loader


def approved_set(*groups):
    working_set = WorkingSet(list(groups))
    working_set.approve_all()
    return working_set


def make_generator(capabilities, loader, **kwargs):
    options = {"concurrency": 3, "max_urls_per_call": 2}
    options.update(kwargs)
    return DraftGenerator(capabilities, loader, **options)


class RecordingCapabilities(StubCapabilities):
    """Stub that remembers the sources and prior content of every call."""

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self.generate_calls = []

    async def generate(self, sources, notes="", prior_content=None, prior_title=None, working_title=""):
        self.generate_calls.append(
            {"labels": [s.label for s in sources], "prior_content": prior_content, "notes": notes}
        )
        return await super().generate(sources, notes, prior_content, prior_title, working_title)


@pytest.mark.asyncio
async def test_failure_is_isolated(loader):
    """One failing group among three does not affect the other two."""
    alpha = Group(kind=GroupKind.CREATE, title="Alpha", urls=urls("alpha", 1))
    beta = Group(kind=GroupKind.CREATE, title="Beta", urls=urls("beta", 1))
    gamma = Group(kind=GroupKind.CREATE, title="Gamma", urls=urls("gamma", 1))
    working_set = approved_set(alpha, beta, gamma)
    generator = make_generator(StubCapabilities(fail_generation_for=["Beta"]), loader)

    statuses = await generator.generate_all(working_set)

    assert statuses == {
        alpha.id: GroupStatus.READY_FOR_REVIEW,
        beta.id: GroupStatus.ERROR,
        gamma.id: GroupStatus.READY_FOR_REVIEW,
    }
    failed = working_set.get(beta.id)
    assert failed.draft is None
    assert "Beta" in failed.error
    assert working_set.get(alpha.id).draft.title == "Alpha"
    assert working_set.get(gamma.id).draft.has_changes is True


@pytest.mark.asyncio
async def test_only_approved_groups_are_generated(loader):
    approved = Group(kind=GroupKind.CREATE, title="Approved", urls=urls("alpha", 1))
    pending = Group(kind=GroupKind.CREATE, title="Pending", urls=urls("beta", 1))
    working_set = WorkingSet([approved, pending])
    working_set.approve(approved.id)
    capabilities = StubCapabilities()

    statuses = await make_generator(capabilities, loader).generate_all(working_set)

    assert list(statuses) == [approved.id]
    assert working_set.get(pending.id).status == GroupStatus.PENDING
    assert capabilities.calls["generate"] == 1


@pytest.mark.asyncio
async def test_notes_reach_generation(loader):
    group = Group(kind=GroupKind.CREATE, title="Alpha", urls=urls("alpha", 1), notes="Keep it short")
    working_set = approved_set(group)
    capabilities = RecordingCapabilities()

    await make_generator(capabilities, loader).generate_all(working_set)

    assert capabilities.generate_calls[0]["notes"] == "Keep it short"
    assert "Notes: Keep it short" in working_set.get(group.id).draft.content


@pytest.mark.asyncio
async def test_update_without_changes_reaches_review(loader):
    """has_changes=False is a valid result and still reaches review."""
    url = urls("wiki", 1)[0]
    group = Group(
        kind=GroupKind.UPDATE,
        title="Wiki",
        existing_unit_id="unit-1",
        urls=[url],
        prior_content=f"# Wiki\nFact from {url}\n",
        prior_title="Wiki page",
    )
    working_set = approved_set(group)

    statuses = await make_generator(StubCapabilities(), loader).generate_all(working_set)

    assert statuses[group.id] == GroupStatus.READY_FOR_REVIEW
    draft = working_set.get(group.id).draft
    assert draft.has_changes is False
    assert draft.title == "Wiki page"
    assert draft.content == group.prior_content


@pytest.mark.asyncio
async def test_iterative_update_generation(loader):
    """Updates with many URLs are generated a few URLs at a time."""
    group_urls = urls("wiki", 5)
    document = DocumentSource(id="doc-1", filename="notes.txt", content="Fact from the document")
    group = Group(
        kind=GroupKind.UPDATE,
        title="Wiki",
        existing_unit_id="unit-1",
        urls=group_urls,
        documents=[document],
        prior_content="# Wiki\n",
        prior_title="Wiki",
    )
    working_set = approved_set(group)
    capabilities = RecordingCapabilities()

    await make_generator(capabilities, loader, max_urls_per_call=2).generate_all(working_set)

    calls = capabilities.generate_calls
    assert len(calls) == 3
    assert calls[0]["labels"] == group_urls[:2] + ["notes.txt"]
    assert calls[1]["labels"] == group_urls[2:4]
    assert calls[2]["labels"] == group_urls[4:]
    # Each slice refines the previous slice's content
    assert calls[0]["prior_content"] == "# Wiki\n"
    assert f"Fact from {group_urls[0]}" in calls[1]["prior_content"]

    draft = working_set.get(group.id).draft
    assert draft.has_changes is True
    for url in group_urls:
        assert f"Fact from {url}" in draft.content
    assert "Fact from the document" in draft.content
    assert len(draft.change_highlights) == 6


@pytest.mark.asyncio
async def test_create_groups_are_not_sliced(loader):
    group = Group(kind=GroupKind.CREATE, title="Alpha", urls=urls("alpha", 5))
    working_set = approved_set(group)
    capabilities = RecordingCapabilities()

    await make_generator(capabilities, loader, max_urls_per_call=2).generate_all(working_set)

    assert len(capabilities.generate_calls) == 1


@pytest.mark.asyncio
async def test_timeout_becomes_group_error(loader):
    group = Group(kind=GroupKind.CREATE, title="Slow", urls=urls("alpha", 1))
    working_set = approved_set(group)
    generator = make_generator(StubCapabilities(generation_delay=0.5), loader, timeout=0.05)

    statuses = await generator.generate_all(working_set)

    assert statuses[group.id] == GroupStatus.ERROR
    assert "timed out" in working_set.get(group.id).error


@pytest.mark.asyncio
async def test_empty_content_is_an_error(loader):
    class EmptyCapabilities(StubCapabilities):
        async def generate(self, sources, notes="", prior_content=None, prior_title=None, working_title=""):
            return GeneratedDraft(title="Empty", content="   ")

    group = Group(kind=GroupKind.CREATE, title="Empty", urls=urls("alpha", 1))
    working_set = approved_set(group)

    statuses = await make_generator(EmptyCapabilities(), loader).generate_all(working_set)

    assert statuses[group.id] == GroupStatus.ERROR
    assert working_set.get(group.id).error == "Generation returned empty content"


def test_blank_content_raises_bulk_import_error():
    with pytest.raises(BulkImportError) as excinfo:
        DraftGenerator._resolve_content(GeneratedDraft(content=" ", has_changes=True))

    assert isinstance(excinfo.value, DraftGenerationError)

@pytest.mark.asyncio
async def test_unchanged_update_with_blank_content_keeps_prior_content(loader):
    """An update reporting no changes may omit its content."""

    class UnchangedCapabilities(StubCapabilities):
        async def generate(self, sources, notes="", prior_content=None, prior_title=None, working_title=""):
            return GeneratedDraft(content="", has_changes=False)

    group = Group(
        kind=GroupKind.UPDATE,
        title="Wiki",
        existing_unit_id="unit-1",
        urls=urls("wiki", 1),
        prior_content="# Wiki\nAlready complete\n",
        prior_title="Wiki page",
    )
    working_set = approved_set(group)

    statuses = await make_generator(UnchangedCapabilities(), loader).generate_all(working_set)

    assert statuses[group.id] == GroupStatus.READY_FOR_REVIEW
    draft = working_set.get(group.id).draft
    assert draft.has_changes is False
    assert draft.content == "# Wiki\nAlready complete\n"
    assert draft.title == "Wiki page"


@pytest.mark.asyncio
async def test_unchanged_slice_with_blank_content_keeps_current_content(loader):
    class UnchangedCapabilities(StubCapabilities):
        async def generate(self, sources, notes="", prior_content=None, prior_title=None, working_title=""):
            return GeneratedDraft(content="  ", has_changes=False)

    group = Group(
        kind=GroupKind.UPDATE,
        title="Wiki",
        existing_unit_id="unit-1",
        urls=urls("wiki", 5),
        prior_content="# Wiki\n",
        prior_title="Wiki",
    )
    working_set = approved_set(group)

    statuses = await make_generator(UnchangedCapabilities(), loader).generate_all(working_set)

    assert statuses[group.id] == GroupStatus.READY_FOR_REVIEW
    draft = working_set.get(group.id).draft
    assert draft.has_changes is False
    assert draft.content == "# Wiki\n"


@pytest.mark.asyncio
async def test_cancelled_generation_becomes_group_error(loader):
    """A cancelled call fails its own group and leaves the others alone."""

    class CancellingCapabilities(StubCapabilities):
        async def generate(self, sources, notes="", prior_content=None, prior_title=None, working_title=""):
            if working_title == "Beta":
                raise asyncio.CancelledError()
            return await super().generate(sources, notes, prior_content, prior_title, working_title)

    alpha = Group(kind=GroupKind.CREATE, title="Alpha", urls=urls("alpha", 1))
    beta = Group(kind=GroupKind.CREATE, title="Beta", urls=urls("beta", 1))
    working_set = approved_set(alpha, beta)

    statuses = await make_generator(CancellingCapabilities(), loader).generate_all(working_set)

    assert statuses == {
        alpha.id: GroupStatus.READY_FOR_REVIEW,
        beta.id: GroupStatus.ERROR,
    }
    cancelled = working_set.get(beta.id)
    assert cancelled.error == "Generation was cancelled"
    assert cancelled.draft is None

    target = working_set.mutate(beta.id, lambda g: g.recover())
    assert target == GroupStatus.APPROVED


@pytest.mark.asyncio
async def test_iterative_update_keeps_inference_of_every_slice(loader):
    class InferringCapabilities(StubCapabilities):
        async def generate(self, sources, notes="", prior_content=None, prior_title=None, working_title=""):
            labels = ", ".join(s.label for s in sources)
            return GeneratedDraft(
                content=f"{prior_content}\n{labels}",
                has_changes=True,
                inference=f"Inferred from {labels}",
            )

    group_urls = urls("wiki", 4)
    group = Group(
        kind=GroupKind.UPDATE,
        title="Wiki",
        existing_unit_id="unit-1",
        urls=group_urls,
        prior_content="# Wiki",
        prior_title="Wiki",
    )
    working_set = approved_set(group)

    await make_generator(InferringCapabilities(), loader, max_urls_per_call=2).generate_all(working_set)

    inference = working_set.get(group.id).draft.inference
    assert inference.splitlines() == [
        f"Inferred from {group_urls[0]}, {group_urls[1]}",
        f"Inferred from {group_urls[2]}, {group_urls[3]}",
    ]


@pytest.mark.asyncio
async def test_missing_title_falls_back_to_working_title(loader):
    class UntitledCapabilities(StubCapabilities):
        async def generate(self, sources, notes="", prior_content=None, prior_title=None, working_title=""):
            return GeneratedDraft(content="# Body")

    group = Group(kind=GroupKind.CREATE, title="Working title", urls=urls("alpha", 1))
    working_set = approved_set(group)

    await make_generator(UntitledCapabilities(), loader).generate_all(working_set)

    draft = working_set.get(group.id).draft
    assert draft.title == "Working title"
    assert draft.has_changes is True


@pytest.mark.asyncio
async def test_generation_history_passes_through_generating(loader):
    group = Group(kind=GroupKind.CREATE, title="Alpha", urls=urls("alpha", 1))
    working_set = approved_set(group)

    await make_generator(StubCapabilities(), loader).generate_all(working_set)

    assert working_set.get(group.id).status_history == [
        GroupStatus.PENDING,
        GroupStatus.APPROVED,
        GroupStatus.GENERATING,
        GroupStatus.READY_FOR_REVIEW,
    ]
