import asyncio

import pytest

from widget_manager.context import DocumentContext, NotebookDocument
from widget_manager.kernel import InMemoryKernel, Session
from widget_manager.manager import WidgetManager
from widget_manager.widgets import WidgetModel, WidgetView, unpack_models

SAMPLE_MODULE = "pkgA"
SAMPLE_VERSION = "1.0.0"


class SampleModel(WidgetModel):
    serializers = {
        "children": {"deserialize": unpack_models},
        "ref": {"deserialize": unpack_models},
    }
    defaults = {"value": 0}


class SlowModel(WidgetModel):
    @classmethod
    async def deserialize_state(cls, state, manager):
        await asyncio.sleep(0.01)
        return await super().deserialize_state(state, manager)


class BrokenModel(WidgetModel):
    @classmethod
    async def deserialize_state(cls, state, manager):
        raise RuntimeError("cannot hydrate")


class SampleView(WidgetView):
    rendered = 0

    def render(self):
        self.rendered += 1


SAMPLE_EXPORTS = {
    "SampleModel": SampleModel,
    "SlowModel": SlowModel,
    "BrokenModel": BrokenModel,
    "SampleView": SampleView,
}


def sample_state(model_name="SampleModel", **state):
    return {
        "_model_name": model_name,
        "_model_module": SAMPLE_MODULE,
        "_model_module_version": SAMPLE_VERSION,
        "_view_name": "SampleView",
        "_view_module": SAMPLE_MODULE,
        "_view_module_version": SAMPLE_VERSION,
        **state,
    }


def persisted_record(model_name="SampleModel", **state):
    return {
        "model_name": model_name,
        "model_module": SAMPLE_MODULE,
        "model_module_version": SAMPLE_VERSION,
        "state": state,
    }


@pytest.fixture
def state_factory():
    return sample_state


@pytest.fixture
def record_factory():
    return persisted_record


@pytest.fixture
def make_manager():
    """
    Factory building a WidgetManager inside the running loop.

    ``widget_state`` is stored in the notebook metadata; ``kernel`` is put on
    the session before the manager is created.
    """
    def factory(kernel=None, widget_state=None, register=True, **kwargs):
        notebook = NotebookDocument()
        if widget_state is not None:
            notebook.set_widget_state(widget_state)
        session = Session()
        if kernel is not None:
            session.change_kernel(kernel)
        context = DocumentContext(model=notebook, session=session, path="work/analysis.ipynb")
        manager = WidgetManager(context, **kwargs)
        if register:
            manager.register(SAMPLE_MODULE, "^1.0.0", SAMPLE_EXPORTS)
        return manager

    return factory


@pytest.fixture
def kernel_factory():
    def factory(**widgets):
        kernel = InMemoryKernel()
        for comm_id, state in widgets.items():
            kernel.add_backend_widget(comm_id, state)
        return kernel

    return factory
