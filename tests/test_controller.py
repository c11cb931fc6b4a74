"""Unit tests for ollamate/core/controller.py (optimistic chat view)"""
from __future__ import annotations

import asyncio

import pytest

from fakes import FakeEngine, FakeRegistry


def _pairs(entries):
    return [(e.role.value, e.content) for e in entries]


@pytest.fixture
def make_controller(messages, assembler):
    from ollamate.core.controller import OptimisticStateController

    def _make(engine=None, registry=None, model="llama3.2:latest"):
        return OptimisticStateController(
            messages=messages,
            assembler=assembler,
            engine=engine or FakeEngine(),
            registry=registry,
            model=model,
        )
    return _make


class GatedEngine:
    """Engine that blocks until released, so tests can look at the view mid-flight."""

    def __init__(self, reply="Later", error=None):
        self.reply = reply
        self.error = error
        self.started = asyncio.Event()
        self.release = asyncio.Event()

    async def chat(self, messages, model):
        self.started.set()
        await self.release.wait()
        if self.error is not None:
            raise self.error
        return self.reply


# ══════════════════════════════════════════════════════════════════════════════
# activate / reload
# ══════════════════════════════════════════════════════════════════════════════

class TestReload:

    @pytest.mark.asyncio
    async def test_activate_loads_history(self, conversations, messages, controller):
        conv = await conversations.create("Test")
        await messages.append(conv.id, "user", "Hi")
        await messages.append(conv.id, "assistant", "Hello")
        await controller.activate(conv.id)
        assert controller.conversation_id == conv.id
        assert _pairs(controller.mirror) == [("user", "Hi"), ("assistant", "Hello")]

    @pytest.mark.asyncio
    async def test_switching_replaces_view(self, conversations, messages, controller):
        a = await conversations.create("A")
        b = await conversations.create("B")
        await messages.append(a.id, "user", "in A")
        await controller.activate(a.id)
        await controller.activate(b.id)
        assert controller.mirror == []

    @pytest.mark.asyncio
    async def test_no_active_conversation_means_empty_view(self, controller):
        await controller.reload()
        assert controller.mirror == []

    @pytest.mark.asyncio
    async def test_read_failure_keeps_previous_view(self, db, conversations, messages, controller):
        from ollamate.core.exceptions import StoreReadError
        conv = await conversations.create("Test")
        await messages.append(conv.id, "user", "Hi")
        await controller.activate(conv.id)
        await db.execute("DROP TABLE chat_messages")
        with pytest.raises(StoreReadError):
            await controller.reload()
        assert _pairs(controller.mirror) == [("user", "Hi")]
        assert controller.last_error.startswith("Failed to load history")

    @pytest.mark.asyncio
    async def test_mirror_is_a_copy(self, conversations, controller):
        conv = await conversations.create("Test")
        await controller.activate(conv.id)
        controller.mirror.append("junk")
        assert controller.mirror == []

    @pytest.mark.asyncio
    async def test_deactivate(self, conversations, messages, controller):
        conv = await conversations.create("Test")
        await messages.append(conv.id, "user", "Hi")
        await controller.activate(conv.id)
        controller.deactivate()
        assert controller.conversation_id is None
        assert controller.mirror == []


# ══════════════════════════════════════════════════════════════════════════════
# submit
# ══════════════════════════════════════════════════════════════════════════════

class TestSubmitSuccess:

    @pytest.mark.asyncio
    async def test_appends_both_turns_and_persists(self, conversations, messages, controller, engine):
        conv = await conversations.create("Test")
        await controller.activate(conv.id)
        reply = await controller.submit("Hi")
        assert reply.content == engine.reply
        assert _pairs(controller.mirror) == [("user", "Hi"), ("assistant", "Hello!")]
        stored = await messages.list(conv.id)
        assert [(m.role.value, m.content) for m in stored] == [("user", "Hi"), ("assistant", "Hello!")]

    @pytest.mark.asyncio
    async def test_engine_receives_assembled_context(self, conversations, messages, settings, controller, engine):
        conv = await conversations.create("Test")
        await messages.append(conv.id, "user", "Earlier")
        await messages.append(conv.id, "assistant", "Reply")
        await settings.set_system_prompt("Be terse")
        await controller.activate(conv.id)
        await controller.submit("Now")
        sent, model = engine.calls[0]
        assert model == "llama3.2:latest"
        assert _pairs(sent) == [
            ("system", "Be terse"),
            ("user", "Earlier"),
            ("assistant", "Reply"),
            ("user", "Now"),
        ]

    @pytest.mark.asyncio
    async def test_prompt_is_trimmed(self, conversations, controller, engine):
        conv = await conversations.create("Test")
        await controller.activate(conv.id)
        await controller.submit("  padded  \n")
        assert _pairs(controller.mirror)[0] == ("user", "padded")

    @pytest.mark.asyncio
    async def test_explicit_model_overrides_selection(self, conversations, controller, engine):
        conv = await conversations.create("Test")
        await controller.activate(conv.id)
        await controller.submit("Hi", model="mistral:7b")
        assert engine.calls[0][1] == "mistral:7b"

    @pytest.mark.asyncio
    async def test_view_matches_store_after_reload(self, conversations, controller):
        conv = await conversations.create("Test")
        await controller.activate(conv.id)
        await controller.submit("One")
        await controller.submit("Two")
        before = controller.mirror
        await controller.reload()
        assert controller.mirror == before

    @pytest.mark.asyncio
    async def test_user_entry_visible_before_reply(self, conversations, make_controller):
        gate = GatedEngine()
        ctl = make_controller(engine=gate)
        conv = await conversations.create("Test")
        await ctl.activate(conv.id)

        task = asyncio.create_task(ctl.submit("Hi"))
        await gate.started.wait()
        assert _pairs(ctl.mirror) == [("user", "Hi")]
        assert ctl.is_busy
        gate.release.set()
        await task
        assert not ctl.is_busy
        assert _pairs(ctl.mirror) == [("user", "Hi"), ("assistant", "Later")]


class TestSubmitInferenceFailure:

    @pytest.mark.asyncio
    async def test_rolls_back_and_writes_nothing(self, conversations, messages, make_controller):
        from ollamate.core.exceptions import InferenceConnectionError
        ctl = make_controller(engine=FakeEngine(error=InferenceConnectionError("daemon down")))
        conv = await conversations.create("Test")
        await messages.append(conv.id, "user", "Earlier")
        await ctl.activate(conv.id)
        before = len(ctl.mirror)

        with pytest.raises(InferenceConnectionError):
            await ctl.submit("Hi")

        assert len(ctl.mirror) == before
        assert [m.content for m in await messages.list(conv.id)] == ["Earlier"]
        assert ctl.last_error == "Failed to get response: daemon down"
        assert not ctl.is_busy

    @pytest.mark.asyncio
    @pytest.mark.parametrize("error_name", ["InferenceTimeoutError", "InferenceError"])
    async def test_every_inference_error_rolls_back(self, conversations, messages, make_controller, error_name):
        from ollamate.core import exceptions
        error = getattr(exceptions, error_name)("boom")
        ctl = make_controller(engine=FakeEngine(error=error))
        conv = await conversations.create("Test")
        await ctl.activate(conv.id)
        with pytest.raises(exceptions.InferenceError):
            await ctl.submit("Hi")
        assert ctl.mirror == []
        assert await messages.count(conv.id) == 0

    @pytest.mark.asyncio
    async def test_unknown_model_rolls_back(self, conversations, make_controller):
        from ollamate.core.exceptions import UnknownModelError
        ctl = make_controller(engine=FakeEngine(error=UnknownModelError("ghost")))
        conv = await conversations.create("Test")
        await ctl.activate(conv.id)
        with pytest.raises(UnknownModelError):
            await ctl.submit("Hi")
        assert ctl.mirror == []

    @pytest.mark.asyncio
    async def test_context_read_failure_rolls_back(self, db, conversations, controller, engine):
        from ollamate.core.exceptions import StoreReadError
        conv = await conversations.create("Test")
        await controller.activate(conv.id)
        await db.execute("DROP TABLE chat_messages")
        with pytest.raises(StoreReadError):
            await controller.submit("Hi")
        assert controller.mirror == []
        assert engine.calls == []

    @pytest.mark.asyncio
    async def test_can_submit_again_after_failure(self, conversations, messages, make_controller):
        from ollamate.core.exceptions import InferenceError
        engine = FakeEngine(error=InferenceError("flaky"))
        ctl = make_controller(engine=engine)
        conv = await conversations.create("Test")
        await ctl.activate(conv.id)
        with pytest.raises(InferenceError):
            await ctl.submit("Hi")
        engine.error = None
        await ctl.submit("Hi")
        assert len(await messages.list(conv.id)) == 2


class TestSubmitPersistenceFailure:

    @pytest.mark.asyncio
    async def test_view_keeps_turns_store_does_not(self, conversations, messages, controller, sabotage):
        from ollamate.core.exceptions import StoreWriteError
        conv = await conversations.create("Test")
        await controller.activate(conv.id)
        await sabotage.fail_inserts("chat_messages")

        with pytest.raises(StoreWriteError):
            await controller.submit("Hi")

        assert _pairs(controller.mirror) == [("user", "Hi"), ("assistant", "Hello!")]
        assert await messages.list(conv.id) == []
        assert controller.last_error.startswith("DB Save Error")
        assert not controller.is_busy

    @pytest.mark.asyncio
    async def test_divergence_clears_on_reload(self, conversations, messages, controller, sabotage):
        from ollamate.core.exceptions import StoreWriteError
        conv = await conversations.create("Test")
        await controller.activate(conv.id)
        await sabotage.fail_inserts("chat_messages")
        with pytest.raises(StoreWriteError):
            await controller.submit("Hi")
        await controller.reload()
        assert controller.mirror == []


class TestSubmitPreconditions:

    @pytest.mark.asyncio
    async def test_requires_active_conversation(self, controller):
        from ollamate.core.exceptions import NoActiveConversationError
        with pytest.raises(NoActiveConversationError):
            await controller.submit("Hi")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("content", ["", "   ", "\n\t"])
    async def test_rejects_blank_prompt(self, conversations, controller, content):
        conv = await conversations.create("Test")
        await controller.activate(conv.id)
        with pytest.raises(ValueError):
            await controller.submit(content)
        assert controller.mirror == []

    @pytest.mark.asyncio
    async def test_requires_model(self, conversations, make_controller):
        from ollamate.core.exceptions import NoModelSelectedError
        ctl = make_controller(model=None)
        conv = await conversations.create("Test")
        await ctl.activate(conv.id)
        with pytest.raises(NoModelSelectedError):
            await ctl.submit("Hi")
        assert ctl.mirror == []

    @pytest.mark.asyncio
    async def test_second_submit_while_pending_is_refused(self, conversations, make_controller):
        from ollamate.core.exceptions import ConversationBusyError
        gate = GatedEngine()
        ctl = make_controller(engine=gate)
        conv = await conversations.create("Test")
        await ctl.activate(conv.id)

        first = asyncio.create_task(ctl.submit("One"))
        await gate.started.wait()
        with pytest.raises(ConversationBusyError):
            await ctl.submit("Two")
        assert _pairs(ctl.mirror) == [("user", "One")]
        gate.release.set()
        await first


class TestSwitchDuringInference:

    @pytest.mark.asyncio
    async def test_reply_is_stored_in_original_conversation(self, conversations, messages, make_controller):
        gate = GatedEngine(reply="For A")
        ctl = make_controller(engine=gate)
        a = await conversations.create("A")
        b = await conversations.create("B")
        await ctl.activate(a.id)

        task = asyncio.create_task(ctl.submit("Question for A"))
        await gate.started.wait()
        await ctl.activate(b.id)
        gate.release.set()
        await task

        assert ctl.mirror == []
        assert [m.content for m in await messages.list(a.id)] == ["Question for A", "For A"]
        assert await messages.list(b.id) == []

    @pytest.mark.asyncio
    async def test_failure_after_switch_leaves_new_view_alone(self, conversations, messages, make_controller):
        from ollamate.core.exceptions import InferenceError
        gate = GatedEngine(error=InferenceError("late failure"))
        ctl = make_controller(engine=gate)
        a = await conversations.create("A")
        b = await conversations.create("B")
        await messages.append(b.id, "user", "already in B")
        await ctl.activate(a.id)

        task = asyncio.create_task(ctl.submit("Question for A"))
        await gate.started.wait()
        await ctl.activate(b.id)
        gate.release.set()
        with pytest.raises(InferenceError):
            await task

        assert _pairs(ctl.mirror) == [("user", "already in B")]

    @pytest.mark.asyncio
    async def test_switch_away_and_back_keeps_whole_turn(self, conversations, messages, make_controller):
        gate = GatedEngine(reply="ans")
        ctl = make_controller(engine=gate)
        a = await conversations.create("A")
        b = await conversations.create("B")
        await messages.append(a.id, "user", "earlier")
        await ctl.activate(a.id)

        task = asyncio.create_task(ctl.submit("q"))
        await gate.started.wait()
        await ctl.activate(b.id)
        await ctl.activate(a.id)
        assert _pairs(ctl.mirror) == [("user", "earlier")]
        gate.release.set()
        await task

        assert _pairs(ctl.mirror) == [("user", "earlier"), ("user", "q"), ("assistant", "ans")]
        stored = [(m.role.value, m.content) for m in await messages.list(a.id)]
        assert stored == _pairs(ctl.mirror)

    @pytest.mark.asyncio
    async def test_failure_after_switching_back_shows_stored_history(self, conversations, messages, make_controller):
        from ollamate.core.exceptions import InferenceError
        gate = GatedEngine(error=InferenceError("late failure"))
        ctl = make_controller(engine=gate)
        a = await conversations.create("A")
        b = await conversations.create("B")
        await ctl.activate(a.id)

        task = asyncio.create_task(ctl.submit("q"))
        await gate.started.wait()
        await ctl.activate(b.id)
        await ctl.activate(a.id)
        gate.release.set()
        with pytest.raises(InferenceError):
            await task

        assert ctl.mirror == []
        assert await messages.list(a.id) == []


# ══════════════════════════════════════════════════════════════════════════════
# model selection
# ══════════════════════════════════════════════════════════════════════════════

class TestRefreshModels:

    @staticmethod
    def _models(*names):
        from ollamate.core.protocol import LocalModel
        return [LocalModel(name=n, size=1) for n in names]

    @pytest.mark.asyncio
    async def test_keeps_valid_selection(self, make_controller):
        ctl = make_controller(registry=FakeRegistry(self._models("a", "llama3.2:latest")))
        await ctl.refresh_models()
        assert ctl.model == "llama3.2:latest"

    @pytest.mark.asyncio
    async def test_falls_back_to_first_model(self, make_controller):
        ctl = make_controller(registry=FakeRegistry(self._models("phi3", "gemma2")), model="gone")
        await ctl.refresh_models()
        assert ctl.model == "phi3"

    @pytest.mark.asyncio
    async def test_empty_list_clears_selection(self, make_controller):
        ctl = make_controller(registry=FakeRegistry([]))
        assert await ctl.refresh_models() == []
        assert ctl.model is None

    @pytest.mark.asyncio
    async def test_registry_failure_clears_and_raises(self, make_controller):
        from ollamate.core.exceptions import InferenceConnectionError
        ctl = make_controller(registry=FakeRegistry(error=InferenceConnectionError("down")))
        with pytest.raises(InferenceConnectionError):
            await ctl.refresh_models()
        assert ctl.model is None
        assert ctl.models == []
        assert ctl.last_error == "Failed to get models: down"

    @pytest.mark.asyncio
    async def test_without_registry_is_a_no_op(self, make_controller):
        ctl = make_controller(registry=None)
        assert await ctl.refresh_models() == []
        assert ctl.model == "llama3.2:latest"

    @pytest.mark.asyncio
    async def test_select_model(self, make_controller):
        ctl = make_controller()
        ctl.select_model("mistral:7b")
        assert ctl.model == "mistral:7b"
