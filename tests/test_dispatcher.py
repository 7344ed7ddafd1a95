"""Tests for perch.mvc — controller resolution, the dispatch loop, and forwarding."""

from typing import Any

import pytest

from perch.di import Di
from perch.errors import DispatchError, NotFound
from perch.mvc import MAX_DISPATCH_LOOPS, Controller, Dispatcher, camelize


class PostsController(Controller):
    def initialize(self) -> None:
        self.initialized = getattr(self, "initialized", 0) + 1

    def index_action(self) -> str:
        return "all posts"

    def show_action(self, slug: str) -> str:
        return f"post {slug}"

    async def feed_action(self, page: int = 1) -> dict[str, Any]:
        return {"page": page}

    def by_year_action(self, year: str, *, month: str = "01") -> str:
        return f"{year}-{month}"

    def forward_action(self) -> None:
        self.dispatcher.forward({"action": "show", "params": ["forwarded"]})

    def loop_action(self) -> None:
        self.dispatcher.forward({"action": "loop"})


class UserProfileController(Controller):
    def index_action(self) -> str:
        return "profile"


class GuardedController(Controller):
    def __init__(self) -> None:
        self.events: list[str] = []

    def initialize(self) -> None:
        self.events.append("init")

    def before_execute_route(self, dispatcher: Dispatcher) -> bool | None:
        self.events.append("before")
        if dispatcher.get_action_name() == "secret":
            return False
        if dispatcher.get_action_name() == "old":
            dispatcher.forward({"action": "new"})
        return None

    def after_execute_route(self, dispatcher: Dispatcher) -> None:
        self.events.append(f"after:{dispatcher.get_returned_value()}")

    def index_action(self) -> str:
        self.events.append("action")
        return "ok"

    def secret_action(self) -> str:
        return "leaked"

    def new_action(self) -> str:
        return "new"


@pytest.fixture
def dispatcher(di: Di) -> Dispatcher:
    dispatcher = di.get_shared("dispatcher")
    dispatcher.register("posts", PostsController)
    dispatcher.register("guarded", GuardedController)
    return dispatcher


def target(dispatcher: Dispatcher, controller: str, action: str, *params: Any, **named: Any) -> Dispatcher:
    dispatcher.set_controller_name(controller)
    dispatcher.set_action_name(action)
    dispatcher.set_params(list(params))
    dispatcher.set_named_params(named)
    return dispatcher


class TestCamelize:
    @pytest.mark.parametrize(
        ("name", "expected"),
        [("posts", "Posts"), ("user_profile", "UserProfile"), ("user-profile", "UserProfile")],
    )
    def test_camelize(self, name: str, expected: str) -> None:
        assert camelize(name) == expected


# ---------------------------------------------------------------------------
# Resolution
# ---------------------------------------------------------------------------


class TestControllerResolution:
    def test_registered(self, dispatcher: Dispatcher) -> None:
        assert dispatcher.get_controller_class("posts") is PostsController

    def test_registered_import_string(self, dispatcher: Dispatcher) -> None:
        dispatcher.register("profile", f"{__name__}:UserProfileController")
        assert dispatcher.get_controller_class("profile") is UserProfileController

    def test_bad_import_string(self, dispatcher: Dispatcher) -> None:
        dispatcher.register("broken", "nowhere.module:Missing")
        with pytest.raises(DispatchError, match="could not be imported"):
            dispatcher.get_controller_class("broken")

    def test_namespace_lookup(self, dispatcher: Dispatcher) -> None:
        dispatcher.set_default_namespace(__name__)
        assert dispatcher.get_controller_class("user_profile") is UserProfileController

    def test_not_found(self, dispatcher: Dispatcher) -> None:
        with pytest.raises(NotFound, match="Controller 'missing' was not found"):
            dispatcher.get_controller_class("missing")

    def test_defaults(self, dispatcher: Dispatcher) -> None:
        assert dispatcher.get_controller_name() == "index"
        assert dispatcher.get_action_name() == "index"
        dispatcher.set_default_controller("posts").set_default_action("show")
        assert dispatcher.get_controller_name() == "posts"
        assert dispatcher.get_action_name() == "show"


# ---------------------------------------------------------------------------
# Dispatching
# ---------------------------------------------------------------------------


class TestDispatch:
    async def test_index(self, dispatcher: Dispatcher) -> None:
        assert await target(dispatcher, "posts", "index").dispatch() == "all posts"
        assert dispatcher.is_finished()
        assert isinstance(dispatcher.get_active_controller(), PostsController)
        assert dispatcher.get_last_controller() is dispatcher.get_active_controller()

    async def test_positional_params(self, dispatcher: Dispatcher) -> None:
        assert await target(dispatcher, "posts", "show", "hello").dispatch() == "post hello"

    async def test_extra_params_are_dropped(self, dispatcher: Dispatcher) -> None:
        assert await target(dispatcher, "posts", "show", "hello", "extra").dispatch() == "post hello"

    async def test_missing_params(self, dispatcher: Dispatcher) -> None:
        with pytest.raises(NotFound, match="Invalid parameters"):
            await target(dispatcher, "posts", "show").dispatch()

    async def test_named_params(self, dispatcher: Dispatcher) -> None:
        result = await target(dispatcher, "posts", "by_year", year="2024", month="06", day="9").dispatch()
        assert result == "2024-06"

    async def test_async_action(self, dispatcher: Dispatcher) -> None:
        assert await target(dispatcher, "posts", "feed", page=3).dispatch() == {"page": 3}

    async def test_missing_action(self, dispatcher: Dispatcher) -> None:
        with pytest.raises(NotFound, match="Action 'nope' was not found"):
            await target(dispatcher, "posts", "nope").dispatch()

    async def test_custom_action_suffix(self, dispatcher: Dispatcher) -> None:
        class PlainController(Controller):
            def index(self) -> str:
                return "plain"

        dispatcher.register("plain", PlainController).set_action_suffix("")
        assert await target(dispatcher, "plain", "index").dispatch() == "plain"

    async def test_initialize_runs_once(self, dispatcher: Dispatcher) -> None:
        await target(dispatcher, "posts", "index").dispatch()
        await target(dispatcher, "posts", "index").dispatch()
        assert dispatcher.get_active_controller().initialized == 1

    async def test_controller_gets_container(self, dispatcher: Dispatcher, di: Di) -> None:
        await target(dispatcher, "posts", "index").dispatch()
        assert dispatcher.get_active_controller().get_di() is di

    async def test_get_param(self, dispatcher: Dispatcher) -> None:
        target(dispatcher, "posts", "show", "42abc", slug="x")
        assert dispatcher.get_param(0) == "42abc"
        assert dispatcher.get_param(0, "int") == 42
        assert dispatcher.get_param("slug") == "x"
        assert dispatcher.get_param(5, default="none") == "none"
        assert dispatcher.has_param(0)
        assert not dispatcher.has_param("missing")


class TestHooksAndForwarding:
    async def test_hooks_wrap_the_action(self, dispatcher: Dispatcher) -> None:
        await target(dispatcher, "guarded", "index").dispatch()
        assert dispatcher.get_active_controller().events == ["before", "init", "action", "after:ok"]

    async def test_before_hook_can_cancel(self, dispatcher: Dispatcher) -> None:
        assert await target(dispatcher, "guarded", "secret").dispatch() is None

    async def test_before_hook_can_forward(self, dispatcher: Dispatcher) -> None:
        assert await target(dispatcher, "guarded", "old").dispatch() == "new"
        assert dispatcher.was_forwarded()
        assert dispatcher.get_previous_action_name() == "old"
        assert dispatcher.get_active_controller().events == ["before", "before", "init", "after:new"]

    async def test_missing_action_checked_after_hook(self, dispatcher: Dispatcher) -> None:
        with pytest.raises(NotFound, match="'gone'"):
            await target(dispatcher, "guarded", "gone").dispatch()
        assert dispatcher.get_active_controller().events == ["before"]

    async def test_action_forward(self, dispatcher: Dispatcher) -> None:
        assert await target(dispatcher, "posts", "forward").dispatch() == "post forwarded"
        assert dispatcher.get_action_name() == "show"

    async def test_forward_to_other_controller(self, dispatcher: Dispatcher) -> None:
        dispatcher.register("profile", UserProfileController)
        target(dispatcher, "posts", "index")
        dispatcher.forward({"controller": "profile", "action": "index"})
        assert await dispatcher.dispatch() == "profile"
        assert dispatcher.get_previous_controller_name() == "posts"

    async def test_cyclic_forward(self, dispatcher: Dispatcher) -> None:
        with pytest.raises(DispatchError, match="cyclic routing"):
            await target(dispatcher, "posts", "loop").dispatch()
        assert MAX_DISPATCH_LOOPS == 256
