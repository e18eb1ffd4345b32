"""
Command line entry point: restore the widgets of a notebook and print the registry
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Dict, Any, List, Optional

from . import config
from .config import KERNEL_CONFIG, LOGGING_CONFIG
from .context import DocumentContext, NotebookDocument
from .core.config_validator import validate_startup_config
from .core.exceptions import ConfigValidationError, WidgetManagerError
from .core.logging_config import setup_logging
from .kernel import InMemoryKernel, WebSocketKernel
from .manager import WidgetManager
from .widgets.builtin import register_builtin_modules, BASE_MODULE, CONTROLS_MODULE, MODULE_VERSION


def _demo_widget(model_name: str, module: str = CONTROLS_MODULE, **state) -> Dict[str, Any]:
    return {
        "_model_name": model_name,
        "_model_module": module,
        "_model_module_version": MODULE_VERSION,
        **state
    }


def build_demo(notebook: Optional[NotebookDocument] = None):
    """In-memory kernel with a few live widgets, and a notebook that also saved some"""
    kernel = InMemoryKernel()
    kernel.add_backend_widget("layout", _demo_widget("LayoutModel", BASE_MODULE, _view_name="LayoutView"))
    kernel.add_backend_widget("slider", _demo_widget(
        "IntSliderModel", _view_name="IntSliderView", value=42, layout="IPY_MODEL_layout"))
    kernel.add_backend_widget("box", _demo_widget(
        "HBoxModel", _view_name="HBoxView", children=["IPY_MODEL_slider"], layout="IPY_MODEL_layout"))
    
    if notebook is None:
        notebook = NotebookDocument()
        notebook.set_widget_state({
            "version_major": 2,
            "version_minor": 0,
            "state": {
                # Saved before the slider moved; the live value wins
                "slider": {
                    "model_name": "IntSliderModel",
                    "model_module": CONTROLS_MODULE,
                    "model_module_version": MODULE_VERSION,
                    "state": {"value": 7, "layout": "IPY_MODEL_layout"},
                },
                "saved-text": {
                    "model_name": "TextModel",
                    "model_module": CONTROLS_MODULE,
                    "model_module_version": MODULE_VERSION,
                    "state": {"value": "restored from the notebook"},
                },
            },
        })
    return kernel, notebook


def describe_registry(manager: WidgetManager) -> Dict[str, Any]:
    """JSON-able summary of the reconciled models"""
    models = {}
    for model in manager.registry.resolved_models():
        models[model.model_id] = {
            "model_name": model.name,
            "model_module": model.module,
            "model_module_version": model.module_version,
            "live": model.comm_live,
            "state": model.serialize_state(model.get_state(drop_defaults=True)),
        }
    failed = [model_id for model_id in manager.registry.model_ids() if model_id not in models]
    return {"models": models, "failed": failed}


class WidgetHost:
    """Owns the kernel, document context and widget manager of one CLI run"""
    
    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.logger = logging.getLogger(__name__)
        self.kernel = None
        self.context: Optional[DocumentContext] = None
        self.manager: Optional[WidgetManager] = None
        self.stop_event = asyncio.Event()
        
    async def start(self) -> Dict[str, Any]:
        args = self.args
        notebook = NotebookDocument.from_file(args.notebook) if args.notebook else None
        
        if args.demo:
            self.kernel, notebook = build_demo(notebook)
        elif args.kernel_id:
            self.kernel = WebSocketKernel.from_server(
                args.base_url, args.kernel_id, token=args.token,
                username=KERNEL_CONFIG["username"],
                connection_timeout=KERNEL_CONFIG["connection_timeout"],
            )
            await self.kernel.connect()
            
        self.context = DocumentContext(model=notebook, path=args.path or (args.notebook or ""))
        if self.kernel is not None:
            self.context.session.change_kernel(self.kernel)
            
        self.manager = WidgetManager(self.context)
        register_builtin_modules(self.manager)
        for option in args.module:
            name, version, source = parse_module_option(option)
            self.manager.register(name, version, source)
            
        summary = await self.manager.restored
        self.logger.info("Widgets restored", extra={"extra_data": summary})
        
        if args.write:
            self.context.model.set_widget_state(self.manager.get_state())
            self.context.model.save(args.write)
        return summary
        
    async def wait(self):
        """Follow kernel restarts until stopped"""
        self.logger.info("Watching kernel lifecycle, press Ctrl+C to stop")
        await self.stop_event.wait()
        
    def stop(self):
        self.stop_event.set()
        
    async def close(self):
        if self.manager is not None:
            self.manager.dispose()
        if isinstance(self.kernel, WebSocketKernel):
            await self.kernel.disconnect()
        self.logger.info("Widget host stopped")


def parse_module_option(text: str):
    """Parse ``NAME@VERSION=dotted.module``"""
    try:
        target, source = text.rsplit("=", 1)
        name, version = target.rsplit("@", 1)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected NAME@VERSION=module.path, got {text!r}")
    if not name or not version or not source:
        raise argparse.ArgumentTypeError(f"Expected NAME@VERSION=module.path, got {text!r}")
    return name, version, source


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="widget-manager",
        description="Reconcile live kernel widgets with the widget state saved in a notebook"
    )
    parser.add_argument("notebook", nargs="?", help="Notebook (.ipynb) to restore widgets for")
    parser.add_argument("--demo", action="store_true", help="Use an in-memory kernel with demo widgets")
    parser.add_argument("--kernel-id", help="Id of a running kernel on the Jupyter server")
    parser.add_argument("--base-url", default=KERNEL_CONFIG["base_url"], help="Jupyter server URL")
    parser.add_argument("--token", default=KERNEL_CONFIG["token"], help="Jupyter server token")
    parser.add_argument("--path", help="Notebook path on the server (for URL resolution)")
    parser.add_argument("--module", action="append", default=[], metavar="NAME@VERSION=MODULE",
                        help="Register a Python module as a widget module (repeatable)")
    parser.add_argument("--write", metavar="PATH", help="Save the notebook with the reconciled widget state")
    parser.add_argument("--watch", action="store_true", help="Keep running and follow kernel restarts")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log at DEBUG level")
    return parser


async def run(args: argparse.Namespace) -> int:
    host = WidgetHost(args)
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, host.stop)
    except NotImplementedError:
        # add_signal_handler is unavailable on Windows event loops
        pass
        
    try:
        await host.start()
        print(json.dumps(describe_registry(host.manager), indent=2, default=repr))
        if args.watch:
            await host.wait()
        return 0
    except (WidgetManagerError, OSError, asyncio.TimeoutError) as e:
        host.logger.error("Failed to restore widgets", exc_info=True, extra={
            "extra_data": {"error_type": type(e).__name__, "error_message": str(e)}
        })
        return 1
    finally:
        await host.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    
    # Validate configuration first (before logging setup)
    try:
        validate_startup_config()
    except ConfigValidationError as e:
        print(f"❌ Configuration validation failed: {e}", file=sys.stderr)
        print("Please fix the configuration errors and try again.", file=sys.stderr)
        return 1
        
    setup_logging(LOGGING_CONFIG, verbose=args.verbose)
    logger = logging.getLogger(__name__)
    logger.info("Starting widget manager", extra={"extra_data": {
        "comm_target": config.COMM_CONFIG["target_name"],
        "demo": args.demo,
        "notebook": args.notebook,
    }})
    
    return asyncio.run(run(args))


if __name__ == "__main__":
    sys.exit(main())
