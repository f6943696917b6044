import asyncio

import pytest

from builders import HOSTNAME_ADDRESS, IP_ADDRESS, ingress
from lbstatus.errors import DuplicateSeedError
from lbstatus.models import ResourceKind, RoutingResourceKey
from lbstatus.synchronizer import Outcome, StatusSynchronizer

CASES = [
    # name, register, controller class, resource class, expected status
    ("noop", (), "", "", ()),
    ("unsetingressclass", IP_ADDRESS, "phony", "", ()),
    ("nonmatchingingressclass", IP_ADDRESS, "phony", "other", ()),
    ("matchingingressclass", IP_ADDRESS, "phony", "phony", IP_ADDRESS),
]


async def run_hook(synchronizer, hook, resource):
    if hook == "add":
        return await synchronizer.on_resource_add(resource)
    return await synchronizer.on_resource_update(resource, resource)


@pytest.mark.asyncio
@pytest.mark.parametrize("hook", ["add", "update"])
@pytest.mark.parametrize("name, address, controller_class, resource_class, expected", CASES)
async def test_seeded_resource_status(
    make_synchronizer, register, cache, patcher, hook, name, address, controller_class, resource_class, expected
):
    register.set(address)
    synchronizer = make_synchronizer(controller_class)
    preop = ingress(name, resource_class)
    assert cache.seed(preop.key, preop)

    await run_hook(synchronizer, hook, preop)

    assert cache.get(preop.key).status == expected
    assert len(patcher.calls) == (1 if expected else 0)


@pytest.mark.asyncio
async def test_add_tracks_new_matching_resource(make_synchronizer, register, cache, patcher):
    register.set(IP_ADDRESS)
    synchronizer = make_synchronizer("phony")
    resource = ingress("web", "phony")

    assert await synchronizer.on_resource_add(resource) is Outcome.APPLIED
    assert cache.get(resource.key).status == IP_ADDRESS
    assert patcher.calls == [(resource.key, IP_ADDRESS)]


@pytest.mark.asyncio
async def test_add_does_not_track_non_matching_resource(make_synchronizer, register, cache, patcher):
    register.set(IP_ADDRESS)
    synchronizer = make_synchronizer("phony")

    outcome = await synchronizer.on_resource_add(ingress("web", "other"))

    assert outcome is Outcome.SKIPPED
    assert len(cache) == 0
    assert patcher.calls == []


@pytest.mark.asyncio
async def test_reconcile_is_idempotent(make_synchronizer, register, patcher):
    register.set(IP_ADDRESS)
    synchronizer = make_synchronizer()
    resource = ingress("web")

    assert await synchronizer.on_resource_add(resource) is Outcome.APPLIED
    assert await synchronizer.on_resource_update(resource, resource) is Outcome.UNCHANGED
    assert len(patcher.calls) == 1


@pytest.mark.asyncio
async def test_delete_removes_cache_entry(make_synchronizer, register, cache):
    register.set(IP_ADDRESS)
    synchronizer = make_synchronizer()
    resource = ingress("web")
    await synchronizer.on_resource_add(resource)

    await synchronizer.on_resource_delete(resource)

    assert cache.get(resource.key) is None


@pytest.mark.asyncio
async def test_delete_removes_non_matching_entry(make_synchronizer, cache):
    synchronizer = make_synchronizer("phony")
    resource = ingress("web", "other", address=IP_ADDRESS)
    cache.seed(resource.key, resource)

    await synchronizer.on_resource_delete(resource)

    assert cache.get(resource.key) is None


@pytest.mark.asyncio
async def test_address_change_resyncs_unchanged_resources(make_synchronizer, register, cache, patcher):
    synchronizer = make_synchronizer("phony")
    for name in ("a", "b"):
        await synchronizer.on_resource_add(ingress(name, "phony"))
    await synchronizer.on_resource_add(ingress("c", "other"))
    assert patcher.calls == []

    register.set(HOSTNAME_ADDRESS)
    outcomes = await synchronizer.on_address_changed()

    assert outcomes[Outcome.APPLIED] == 2
    assert cache.get(ingress("a").key).status == HOSTNAME_ADDRESS
    assert cache.get(ingress("b").key).status == HOSTNAME_ADDRESS
    assert cache.get(ingress("c").key) is None


@pytest.mark.asyncio
async def test_service_delete_clears_matching_status(make_synchronizer, register, cache, patcher):
    register.set(IP_ADDRESS)
    synchronizer = make_synchronizer("phony")
    matching = ingress("web", "phony")
    other = ingress("api", "other", address=HOSTNAME_ADDRESS)
    await synchronizer.on_resource_add(matching)
    cache.seed(other.key, other)

    register.set(())
    outcomes = await synchronizer.on_address_changed()

    assert cache.get(matching.key).status == ()
    assert cache.get(other.key).status == HOSTNAME_ADDRESS
    assert outcomes[Outcome.APPLIED] == 1
    assert outcomes[Outcome.SKIPPED] == 1
    assert patcher.calls[-1] == (matching.key, ())


@pytest.mark.asyncio
async def test_resync_skips_resource_whose_class_changed(make_synchronizer, register, cache, patcher):
    register.set(IP_ADDRESS)
    synchronizer = make_synchronizer("phony")
    await synchronizer.on_resource_add(ingress("web", "phony"))

    outcome = await synchronizer.on_resource_update(ingress("web", "phony"), ingress("web", "other"))
    register.set(HOSTNAME_ADDRESS)
    await synchronizer.on_address_changed()

    assert outcome is Outcome.SKIPPED
    assert cache.get(ingress("web").key).status == IP_ADDRESS
    assert len(patcher.calls) == 1


@pytest.mark.asyncio
async def test_patch_failure_does_not_block_other_resources(make_synchronizer, register, cache, patcher):
    synchronizer = make_synchronizer()
    for name in ("a", "b", "c"):
        await synchronizer.on_resource_add(ingress(name))
    patcher.failing.add("b")

    register.set(IP_ADDRESS)
    outcomes = await synchronizer.on_address_changed()

    assert outcomes[Outcome.APPLIED] == 2
    assert outcomes[Outcome.FAILED] == 1
    assert cache.get(ingress("b").key).status == ()

    patcher.failing.clear()
    outcomes = await synchronizer.on_address_changed()

    assert outcomes[Outcome.APPLIED] == 1
    assert outcomes[Outcome.UNCHANGED] == 2
    assert cache.get(ingress("b").key).status == IP_ADDRESS


@pytest.mark.asyncio
async def test_failed_resource_retries_on_next_event(make_synchronizer, register, cache, patcher):
    register.set(IP_ADDRESS)
    synchronizer = make_synchronizer()
    patcher.failing.add("web")

    assert await synchronizer.on_resource_add(ingress("web")) is Outcome.FAILED
    assert ingress("web").key in cache

    patcher.failing.clear()
    assert await synchronizer.on_resource_update(None, ingress("web")) is Outcome.APPLIED
    assert cache.get(ingress("web").key).status == IP_ADDRESS


@pytest.mark.asyncio
async def test_converges_on_last_address(make_synchronizer, register, cache):
    synchronizer = make_synchronizer()
    resource = ingress("web")

    for address in (IP_ADDRESS, HOSTNAME_ADDRESS, IP_ADDRESS + HOSTNAME_ADDRESS):
        register.set(address)
        await synchronizer.on_resource_update(resource, resource)

    assert cache.get(resource.key).status == IP_ADDRESS + HOSTNAME_ADDRESS


@pytest.mark.asyncio
async def test_claim_default_class(make_synchronizer, register, cache):
    register.set(IP_ADDRESS)
    synchronizer = make_synchronizer("", claim_default_class=True)

    await synchronizer.on_resource_add(ingress("web", "contour"))

    assert cache.get(ingress("web").key).status == IP_ADDRESS


@pytest.mark.asyncio
async def test_rebuild_replays_and_resyncs(make_synchronizer, register, cache, patcher):
    register.set(IP_ADDRESS)
    synchronizer = make_synchronizer()
    resources = [ingress("a"), ingress("b", address=IP_ADDRESS), ingress("c", "other")]

    outcomes = await synchronizer.rebuild(resources)

    assert [call[0].name for call in patcher.calls] == ["a"]
    assert outcomes[Outcome.APPLIED] == 1
    assert outcomes[Outcome.UNCHANGED] == 1
    assert len(cache) == 2
    assert cache.get(ingress("c").key) is None


@pytest.mark.asyncio
async def test_address_change_with_nothing_tracked(make_synchronizer):
    outcomes = await make_synchronizer().on_address_changed()

    assert sum(outcomes.values()) == 0


@pytest.mark.asyncio
async def test_rebuild_rejects_duplicate_listing(make_synchronizer):
    synchronizer = make_synchronizer()

    with pytest.raises(DuplicateSeedError):
        await synchronizer.rebuild([ingress("a"), ingress("a")])


def test_prune_drops_resources_missing_from_listing(make_synchronizer, cache):
    synchronizer = make_synchronizer()
    for name in ("kept", "gone"):
        cache.seed(ingress(name).key, ingress(name))
    proxy_key = RoutingResourceKey("gone", "gone", ResourceKind.HTTPPROXY)
    cache.seed(proxy_key, ingress("gone"))

    removed = synchronizer.prune(ResourceKind.INGRESS, {ingress("kept").key})

    assert removed == [ingress("gone").key]
    assert ingress("kept").key in cache
    assert proxy_key in cache


@pytest.mark.asyncio
async def test_class_change_while_waiting_for_lock_prevents_write(register, cache):
    release = asyncio.Event()
    calls = []

    async def slow_patch(resource, address):
        calls.append((resource.ingress_class, address))
        await release.wait()

    synchronizer = StatusSynchronizer(register, cache, slow_patch, ingress_class="phony")
    register.set(HOSTNAME_ADDRESS)
    first = asyncio.create_task(synchronizer.on_resource_add(ingress("web", "phony")))
    for _ in range(5):
        await asyncio.sleep(0)
    assert len(calls) == 1

    register.set(IP_ADDRESS + HOSTNAME_ADDRESS)
    resync = asyncio.create_task(synchronizer.on_address_changed())
    for _ in range(5):
        await asyncio.sleep(0)
    await synchronizer.on_resource_update(None, ingress("web", "other"))
    release.set()

    assert await first is Outcome.APPLIED
    outcomes = await resync
    assert outcomes[Outcome.SKIPPED] == 1
    assert calls == [("phony", HOSTNAME_ADDRESS)]
    assert cache.get(ingress("web").key).status == HOSTNAME_ADDRESS
