"""Tests for the in-memory versioning service."""

import pytest

from flowdiff.exceptions import BackupFailedError
from flowdiff.workflows.versioning import InMemoryVersioningService


@pytest.mark.asyncio
async def test_snapshot_numbers_versions(workflow):
    service = InMemoryVersioningService()

    first = await service.snapshot('wf-1', workflow, trigger='partial_update')
    second = await service.snapshot('wf-1', workflow, trigger='partial_update',
                                    operations=[{'type': 'addTag', 'tag': 'x'}])

    assert (first.version_number, second.version_number) == (1, 2)
    assert first.pruned == second.pruned == 0
    versions = service.list_versions('wf-1')
    assert [v.version_number for v in versions] == [2, 1]
    assert versions[0].operations == [{'type': 'addTag', 'tag': 'x'}]
    assert versions[0].document['name'] == 'Lead intake'
    assert service.get_version(first.version_id).version_number == 1


@pytest.mark.asyncio
async def test_snapshot_prunes_oldest(workflow):
    service = InMemoryVersioningService(max_versions=2)
    results = [await service.snapshot('wf-1', workflow, trigger='manual') for _ in range(3)]

    assert results[-1].pruned == 1
    assert results[-1].version_number == 3
    assert [v.version_number for v in service.list_versions('wf-1')] == [3, 2]
    assert service.get_version(results[0].version_id) is None


@pytest.mark.asyncio
async def test_snapshot_requires_workflow_id(workflow):
    with pytest.raises(BackupFailedError):
        await InMemoryVersioningService().snapshot('', workflow, trigger='manual')


def test_max_versions_validated():
    with pytest.raises(ValueError):
        InMemoryVersioningService(max_versions=0)
