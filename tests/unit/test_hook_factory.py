"""Unit tests for passgate/hooks/factory.py and passgate/hooks/chain.py."""

from __future__ import annotations

import pytest

from passgate.approval.hook import PasskeyApprovalHook
from passgate.approval.models import AnnounceRequest, RequestContext, ScrapeRequest
from passgate.config import HookSpec
from passgate.errors import ClientError, HookConfigError
from passgate.hooks.chain import HookChain
from passgate.hooks.factory import HOOK_BUILDERS, create_hook, create_hook_chain
from passgate.hooks.peerlimit import PeerLimitHook
from passgate.hooks.protocol import Hook
from passgate.hooks.trafficpush import TrafficPushHook


class RecordingHook:
    def __init__(self, name: str, log: list, reject: bool = False, fail_close: bool = False):
        self.name = name
        self.log = log
        self.reject = reject
        self.fail_close = fail_close

    async def handle_announce(self, ctx, request):
        self.log.append(("announce", self.name))
        if self.reject:
            raise ClientError("unapproved passkey")
        ctx.extras[self.name] = True
        return ctx

    async def handle_scrape(self, ctx, request):
        self.log.append(("scrape", self.name))
        return ctx

    async def close(self):
        self.log.append(("close", self.name))
        if self.fail_close:
            raise RuntimeError("boom")


class TestCreateHook:
    def test_registered_names(self) -> None:
        assert sorted(HOOK_BUILDERS) == ["passkey approval", "peer limit", "traffic push"]

    def test_passkey_approval(self) -> None:
        hook = create_hook(HookSpec(name="passkey approval"))
        assert isinstance(hook, PasskeyApprovalHook)
        assert isinstance(hook, Hook)

    def test_peer_limit(self) -> None:
        assert isinstance(create_hook(HookSpec(name="peer limit")), PeerLimitHook)

    def test_traffic_push(self) -> None:
        spec = HookSpec(name="traffic push", options={"redis_broker": "redis://localhost:6379/0"})
        assert isinstance(create_hook(spec), TrafficPushHook)

    def test_traffic_push_requires_broker(self) -> None:
        with pytest.raises(HookConfigError, match="redis_broker"):
            create_hook(HookSpec(name="traffic push"))

    def test_quoted_flag_wrapped(self) -> None:
        spec = HookSpec(name="passkey approval", options={"allow_when_unverifiable": "false"})
        with pytest.raises(HookConfigError, match="allow_when_unverifiable"):
            create_hook(spec)

    def test_unknown_name(self) -> None:
        with pytest.raises(HookConfigError, match="unknown hook"):
            create_hook(HookSpec(name="jwt"))

    def test_bad_key_length(self) -> None:
        with pytest.raises(HookConfigError):
            create_hook(HookSpec(name="passkey approval", options={"encryption_key": "short"}))

    def test_bad_broker_url(self) -> None:
        spec = HookSpec(name="passkey approval", options={"redis_broker": "localhost:6379"})
        with pytest.raises(HookConfigError):
            create_hook(spec)

    def test_bad_option_type_wrapped(self) -> None:
        spec = HookSpec(name="passkey approval", options={"http_timeout": "soon"})
        with pytest.raises(HookConfigError, match="invalid options"):
            create_hook(spec)

    def test_chain_preserves_order(self) -> None:
        chain = create_hook_chain(
            [HookSpec(name="passkey approval"), HookSpec(name="peer limit")]
        )
        assert [type(hook) for hook in chain.hooks] == [PasskeyApprovalHook, PeerLimitHook]

    def test_empty_chain(self) -> None:
        assert create_hook_chain([]).hooks == []


@pytest.mark.asyncio
class TestHookChain:
    async def test_runs_in_order_and_threads_context(self) -> None:
        log: list = []
        chain = HookChain([RecordingHook("a", log), RecordingHook("b", log)])
        ctx = await chain.handle_announce(RequestContext(), AnnounceRequest())
        assert log == [("announce", "a"), ("announce", "b")]
        assert ctx.extras == {"a": True, "b": True}

    async def test_rejection_stops_chain(self) -> None:
        log: list = []
        chain = HookChain([RecordingHook("a", log, reject=True), RecordingHook("b", log)])
        with pytest.raises(ClientError):
            await chain.handle_announce(RequestContext(), AnnounceRequest())
        assert log == [("announce", "a")]

    async def test_scrape(self) -> None:
        log: list = []
        chain = HookChain([RecordingHook("a", log), RecordingHook("b", log)])
        ctx = RequestContext()
        assert await chain.handle_scrape(ctx, ScrapeRequest()) is ctx
        assert log == [("scrape", "a"), ("scrape", "b")]

    async def test_close_continues_after_failure(self) -> None:
        log: list = []
        chain = HookChain(
            [RecordingHook("a", log, fail_close=True), RecordingHook("b", log)]
        )
        await chain.close()
        assert log == [("close", "a"), ("close", "b")]
