"""Controller base class.

Controllers group related actions. The dispatcher builds one instance
per request, hands it the request's container, and calls the action
method named ``<action>_action`` with the route parameters::

    class PostsController(Controller):
        def initialize(self) -> None:
            self.per_page = 20

        def show_action(self, slug: str):
            return f"<h1>{slug}</h1>"

        async def feed_action(self):
            return {"posts": await load_posts(self.per_page)}

Optional hooks, looked up by name on the instance:

``before_execute_route(dispatcher)``
    Runs before the action. Returning ``False`` skips the action;
    calling ``dispatcher.forward(...)`` re-dispatches.
``after_execute_route(dispatcher)``
    Runs after the action with the returned value available through
    ``dispatcher.get_returned_value()``.
"""

from perch.di.injectable import Injectable


class Controller(Injectable):
    """Base for MVC controllers.

    Subclasses may add attributes freely: only the container slot is
    declared here.
    """

    __slots__ = ("__dict__",)

    def initialize(self) -> None:
        """Called once, right before the first action runs on this instance."""
