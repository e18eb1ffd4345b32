import asyncio

from widget_manager.context import DocumentContext, NotebookDocument, UrlResolver
from widget_manager.kernel import Session

STATE_MIMETYPE = "application/vnd.jupyter.widget-state+json"


def test_widget_state_read_from_metadata():
    blob = {"version_major": 2, "version_minor": 0, "state": {}}
    notebook = NotebookDocument(metadata={"widgets": {STATE_MIMETYPE: blob}})

    assert notebook.widget_state is blob


def test_missing_or_malformed_widget_metadata():
    assert NotebookDocument().widget_state is None
    assert NotebookDocument(metadata={"widgets": "oops"}).widget_state is None


def test_set_widget_state_and_clear():
    notebook = NotebookDocument()
    notebook.set_widget_state({"a": {}})

    assert notebook.metadata == {"widgets": {STATE_MIMETYPE: {"a": {}}}}
    notebook.set_widget_state(None)
    assert "widgets" not in notebook.metadata


def test_save_and_load_roundtrip(tmp_path):
    notebook = NotebookDocument(cells=[{"cell_type": "markdown", "source": "hi", "metadata": {}}])
    notebook.set_widget_state({"a": {"model_name": "M"}})

    path = notebook.save(tmp_path / "nb" / "demo.ipynb")
    loaded = NotebookDocument.from_file(path)

    assert loaded.widget_state == {"a": {"model_name": "M"}}
    assert loaded.cells == notebook.cells
    assert loaded.nbformat == 4


def test_context_shares_event_bus_with_session():
    session = Session()
    context = DocumentContext(session=session, path="a/b.ipynb")

    assert context.events is session.events
    assert context.url_resolver.path == "a/b.ipynb"


def test_url_resolver_relative_and_absolute():
    resolver = UrlResolver("work/notebooks/analysis.ipynb", base_url="http://host:8888/lab")

    async def scenario():
        return (
            await resolver.resolve_url("../data/x y.csv"),
            await resolver.resolve_url("/top.png"),
            await resolver.resolve_url("https://cdn.example.org/w.js"),
            await resolver.resolve_url("data:image/png;base64,AAAA"),
        )

    relative, rooted, remote, data_uri = asyncio.run(scenario())
    assert relative == "work/data/x y.csv"
    assert rooted == "top.png"
    assert remote == "https://cdn.example.org/w.js"
    assert data_uri == "data:image/png;base64,AAAA"


def test_download_url_quotes_path():
    resolver = UrlResolver("nb.ipynb", base_url="http://host:8888/")

    async def scenario():
        return await resolver.get_download_url("work/data/x y.csv"), await resolver.get_download_url("https://a/b")

    local, remote = asyncio.run(scenario())
    assert local == "http://host:8888/files/work/data/x%20y.csv"
    assert remote == "https://a/b"
