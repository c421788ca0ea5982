"""
Unit Tests for SourceGrouper

Tests classification handling and reconciliation of proposed groups.
"""

import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

import pytest

from bulk_import.ai_core.capabilities import GroupAction, ProposedGroup
from bulk_import.ai_core.grouping import SourceGrouper
from bulk_import.ai_core.grouping.source_grouper import UNGROUPED_TITLE
from bulk_import.ai_core.stub import StubCapabilities
from bulk_import.errors import GroupingError
from bulk_import.models.group import GroupKind, GroupStatus
from bulk_import.models.sources import (
    DocumentSource,
    ExistingUnitSummary,
    SourceContent,
    SourceRef,
    WorkSet,
)

U1 = "https://docs.example.com/install"
U2 = "https://docs.example.com/upgrade"
U3 = "https://blog.example.com/release"


@pytest.fixture
def document():
    return DocumentSource(id="doc-1", filename="runbook.pdf", content="Restart the service.")


@pytest.fixture
def work_set(document):
    return WorkSet(urls=[U1, U2, U3], documents=[document])


@pytest.fixture
def contents(work_set):
    items = [SourceContent(ref=SourceRef.url(u), label=u, text=f"Text of {u}") for u in work_set.urls]
    items.extend(
        SourceContent(ref=SourceRef.document(d.id), label=d.filename, text=d.content)
        for d in work_set.documents
    )
    return items


@pytest.fixture
def existing_units():
    return [
        ExistingUnitSummary(
            id="unit-1",
            title="Installation",
            content="# Installation\n\nRun the installer.",
            source_urls=[U1],
        )
    ]


def all_sources(groups):
    refs = []
    for group in groups:
        refs.extend(str(r) for r in group.source_refs())
    return refs


@pytest.mark.asyncio
async def test_default_grouping_covers_every_source(work_set, contents):
    grouper = SourceGrouper(StubCapabilities())

    groups = await grouper.group_sources(work_set, contents, [])

    assert sorted(all_sources(groups)) == sorted(str(r) for r in work_set.source_refs())
    assert all(g.status == GroupStatus.PENDING for g in groups)
    assert all(g.kind == GroupKind.CREATE for g in groups)
    titles = [g.title for g in groups]
    assert titles == ["docs.example.com", "blog.example.com", "Uploaded documents"]


@pytest.mark.asyncio
async def test_update_proposal_gets_prior_content(work_set, contents, existing_units):
    proposals = [
        ProposedGroup(
            action=GroupAction.UPDATE,
            title="Installation",
            existing_unit_id="unit-1",
            urls=[U1, U2],
            rationale="Same product",
            scope="Install and upgrade",
            questions=["Which versions?"],
        ),
        ProposedGroup(
            action=GroupAction.CREATE,
            title="Release notes",
            urls=[U3],
            document_ids=["doc-1"],
        ),
    ]
    grouper = SourceGrouper(StubCapabilities(proposed_groups=proposals))

    groups = await grouper.group_sources(work_set, contents, existing_units)

    update = groups[0]
    assert update.kind == GroupKind.UPDATE
    assert update.existing_unit_id == "unit-1"
    assert update.prior_content == "# Installation\n\nRun the installer."
    assert update.prior_title == "Installation"
    assert update.scope == "Install and upgrade"
    assert update.questions == ["Which versions?"]
    assert groups[1].document_ids == ["doc-1"]
    assert len(groups) == 2


@pytest.mark.asyncio
async def test_known_urls_become_update(contents, existing_units):
    """A group whose URLs all built an existing unit updates that unit."""
    work_set = WorkSet(urls=[U1])
    grouper = SourceGrouper(StubCapabilities())

    groups = await grouper.group_sources(work_set, contents[:1], existing_units)

    assert len(groups) == 1
    assert groups[0].kind == GroupKind.UPDATE
    assert groups[0].existing_unit_id == "unit-1"


def test_reconcile_drops_unknown_and_duplicate_sources(work_set):
    proposals = [
        ProposedGroup(
            action=GroupAction.CREATE,
            title="First",
            urls=[U1, "https://invented.example.com"],
        ),
        ProposedGroup(action=GroupAction.CREATE, title="Second", urls=[U1, U2]),
        ProposedGroup(action=GroupAction.CREATE, title="Empty", urls=[U1]),
    ]
    grouper = SourceGrouper(StubCapabilities())

    groups = grouper.reconcile(work_set, proposals, [])

    assert [g.title for g in groups] == ["First", "Second", UNGROUPED_TITLE]
    assert groups[0].urls == [U1]
    assert groups[1].urls == [U2]
    # U3 and the document were never returned
    assert groups[2].urls == [U3]
    assert groups[2].document_ids == ["doc-1"]
    assert groups[2].kind == GroupKind.CREATE


def test_reconcile_downgrades_unknown_unit(work_set):
    proposals = [
        ProposedGroup(
            action=GroupAction.UPDATE,
            title="Ghost",
            existing_unit_id="unit-404",
            urls=[U1, U2, U3],
            document_ids=["doc-1"],
        )
    ]
    grouper = SourceGrouper(StubCapabilities())

    groups = grouper.reconcile(work_set, proposals, [])

    assert len(groups) == 1
    assert groups[0].kind == GroupKind.CREATE
    assert groups[0].existing_unit_id is None


def test_proposal_flattens_nested_lists():
    proposal = ProposedGroup(
        action=GroupAction.CREATE,
        title="Nested",
        urls=[[U1, U2]],
        questions="Only one question?",
    )

    assert proposal.urls == [U1, U2]
    assert proposal.questions == ["Only one question?"]


@pytest.mark.asyncio
async def test_classification_failure_is_batch_fatal(work_set, contents):
    grouper = SourceGrouper(StubCapabilities(fail_classify=True))

    with pytest.raises(GroupingError):
        await grouper.group_sources(work_set, contents, [])


@pytest.mark.asyncio
async def test_empty_classification_leaves_everything_ungrouped(work_set, contents):
    grouper = SourceGrouper(StubCapabilities(proposed_groups=[]))

    groups = await grouper.group_sources(work_set, contents, [])

    assert len(groups) == 1
    assert groups[0].title == UNGROUPED_TITLE


@pytest.mark.asyncio
async def test_unparseable_classification_is_batch_fatal(work_set, contents):
    class BrokenCapabilities(StubCapabilities):
        async def classify(self, sources, existing_units):
            return None

    grouper = SourceGrouper(BrokenCapabilities())

    with pytest.raises(GroupingError):
        await grouper.group_sources(work_set, contents, [])
