"""
Two-phase restoration of widget models from the kernel and the notebook.

Phase 1 asks the kernel for every open widget comm, requests each comm's
state and registers the replies as live models. Phase 2 registers the
notebook's persisted records for every id that phase 1 did not produce.
Live state therefore always wins over persisted state for the same id.
"""

import asyncio
import logging
import time
from typing import Dict, Any, List, Optional, Set, Tuple

from . import config
from .core.exceptions import CommClosedError
from .core.logging_config import log_error_with_context, log_performance
from .core.tasks import maybe_spawn
from .events import EventBus, EventTypes
from .kernel.base import Comm, Kernel
from .kernel.messages import validate_update_payload
from .registry.model_registry import ModelRegistry
from .widgets.buffers import put_buffers
from .widgets.model import ModelOptions, WidgetModel
from .widgets.persisted import filter_state, record_state, state_records

logger = logging.getLogger(__name__)


class StateReconciler:
    """Merges live kernel state and persisted notebook state into the model registry"""
    
    def __init__(self,
                 registry: ModelRegistry,
                 session,
                 target_name: str = config.COMM_CONFIG["target_name"],
                 event_bus: Optional[EventBus] = None,
                 isolate_failures: bool = config.RESTORE_CONFIG["isolate_failures"]):
        """
        Initialize state reconciler
        
        Args:
            registry: Registry receiving the restored models
            session: Session holding the current kernel (may have none)
            target_name: Comm target of widget comms
            event_bus: Bus for widgets.restore_* events
            isolate_failures: Keep restoring the other ids when one id fails
        """
        self.registry = registry
        self.session = session
        self.target_name = target_name
        self.event_bus = event_bus
        self.isolate_failures = isolate_failures
        self._active_restores = 0
        
        # Stats
        self.restores_started = 0
        self.restores_completed = 0
        self.restores_failed = 0
        
    @property
    def reconciling(self) -> bool:
        return self.registry.reconciling
        
    def schedule(self, document) -> asyncio.Task:
        """
        Start a restoration and make it the one late lookups wait for
        
        Concurrent restorations are not deduplicated; the most recently
        scheduled one is tracked.
        """
        task = asyncio.get_running_loop().create_task(self.restore(document))
        task.add_done_callback(self._log_failure)
        self.registry.restored = task
        return task
        
    async def restore(self, document) -> Dict[str, Any]:
        """
        Restore widgets from the kernel and then from ``document``
        
        Returns:
            Summary with the live and persisted ids that were registered
        """
        self._begin()
        self.restores_started += 1
        start = time.perf_counter()
        self._emit(EventTypes.RESTORE_START, {"kernel_id": getattr(self.session.kernel, "id", None)})
        
        try:
            live_ids = await self._load_from_kernel()
            persisted_ids = await self._load_from_notebook(document)
        except Exception as e:
            self.restores_failed += 1
            self._emit(EventTypes.RESTORE_ERROR, {"error": str(e), "error_type": type(e).__name__})
            raise
        finally:
            self._end()
            
        duration_ms = (time.perf_counter() - start) * 1000
        self.restores_completed += 1
        summary = {"live": sorted(live_ids), "persisted": sorted(persisted_ids), "duration_ms": duration_ms}
        log_performance(logger, "widget restore", duration_ms,
                        live=len(live_ids), persisted=len(persisted_ids))
        self._emit(EventTypes.RESTORE_COMPLETE, summary)
        return summary
        
    # Phase 1
    
    async def _load_from_kernel(self) -> Set[str]:
        kernel = self.session.kernel
        if kernel is None:
            logger.debug("No kernel, skipping live widget restore")
            return set()
            
        comm_info = await kernel.request_comm_info(self.target_name)
        comm_ids = [comm_id for comm_id, info in comm_info.items()
                    if info.get("target_name", self.target_name) == self.target_name]
        logger.debug(f"Kernel {kernel.id} reports {len(comm_ids)} widget comms")
        
        replies = await asyncio.gather(
            *(self._request_state(kernel, comm_id) for comm_id in comm_ids),
            return_exceptions=self.isolate_failures
        )
        
        live: List[Tuple[Comm, Dict[str, Any]]] = []
        known: List[Tuple[Comm, Dict[str, Any]]] = []
        for comm_id, reply in zip(comm_ids, replies):
            if isinstance(reply, BaseException):
                log_error_with_context(logger, reply, "live state request", comm_id=comm_id)
                continue
            if self.registry.has(comm_id):
                known.append(reply)
            else:
                live.append(reply)
                
        # Every slot is allocated before any model starts hydrating, so
        # references between live models resolve without ordering them
        pending = [
            self.registry.new_model(ModelOptions.from_state(state, comm=comm), state)
            for comm, state in live
        ]
        pending.extend(self._reattach(comm, state) for comm, state in known)
        await self._gather_models(pending, "live model construction")
        return {comm.comm_id for comm, _ in live + known}
        
    async def _request_state(self, kernel: Kernel, comm_id: str) -> Tuple[Comm, Dict[str, Any]]:
        previous = kernel.get_comm(comm_id)
        comm = kernel.connect_to_comm(self.target_name, comm_id)
        reused = previous is comm
        # Whoever already listens on a reused comm keeps receiving its traffic
        forward_msg, forward_close = comm.msg_callback, comm.close_callback
        reply: asyncio.Future = asyncio.get_running_loop().create_future()
        
        def on_msg(msg: Dict[str, Any]):
            if not reply.done():
                resolve(msg)
            if forward_msg is not None:
                maybe_spawn(forward_msg(msg), "comm message handler", comm_id=comm_id)
                
        def resolve(msg: Dict[str, Any]):
            data = msg.get("content", {}).get("data", {})
            if data.get("method") != "update":
                return
            try:
                validate_update_payload(data)
                put_buffers(data["state"], data.get("buffer_paths", []), msg.get("buffers", []))
            except Exception as e:
                reply.set_exception(e)
                return
            reply.set_result(data["state"])
            
        def on_close(msg: Dict[str, Any]):
            if not reply.done():
                reply.set_exception(CommClosedError(comm_id))
            if forward_close is not None:
                maybe_spawn(forward_close(msg), "comm close handler", comm_id=comm_id)
                
        comm.on_msg(on_msg)
        comm.on_close(on_close)
        try:
            comm.send({"method": "request_state"})
            state = await reply
        except BaseException:
            if not reused:
                comm.dispose()
            raise
        finally:
            if not comm.is_disposed:
                comm.on_msg(forward_msg)
                comm.on_close(forward_close)
        return comm, state
        
    async def _reattach(self, comm: Comm, state: Dict[str, Any]) -> WidgetModel:
        """Bring an already registered model onto ``comm`` and the live state"""
        model = await self.registry.get_model(comm.comm_id)
        model.attach_comm(comm)
        attributes = await model.deserialize_state(state, model.widget_manager)
        model.set_state(attributes)
        return model
        
    # Phase 2
    
    async def _load_from_notebook(self, document) -> Set[str]:
        blob = document.widget_state if document is not None else None
        if not blob:
            return set()
        blob = self.filter_existing_model_state(blob)
        models = await self.set_state(blob)
        return {model.model_id for model in models}
        
    def filter_existing_model_state(self, blob: Dict[str, Any]) -> Dict[str, Any]:
        """Drop every record whose id already has a registry slot"""
        return filter_state(blob, self.registry.has)
        
    async def set_state(self, blob: Dict[str, Any]) -> List[WidgetModel]:
        """
        Load persisted records into the registry
        
        Ids with an existing slot get the record's state applied to the
        existing model; other ids become models without a comm.
        
        Returns:
            The models that were created or updated
        """
        records = state_records(blob)
        pending = []
        # Slots are allocated synchronously here, before any hydration starts
        for model_id, record in records.items():
            state = record_state(record)
            if self.registry.has(model_id):
                pending.append(self._reapply_state(model_id, state))
            else:
                options = ModelOptions(
                    model_name=record.get("model_name", ""),
                    model_module=record.get("model_module", ""),
                    model_module_version=record.get("model_module_version", ""),
                    model_id=model_id,
                )
                pending.append(self.registry.new_model(options, state))
        return await self._gather_models(pending, "persisted model restore")
        
    async def _reapply_state(self, model_id: str, state: Dict[str, Any]) -> WidgetModel:
        model = await self.registry.get_model(model_id)
        attributes = await model.deserialize_state(state, model.widget_manager)
        model.set_state(attributes)
        return model
        
    # Helpers
    
    async def _gather_models(self, pending: List[Any], operation: str) -> List[WidgetModel]:
        results = await asyncio.gather(*pending, return_exceptions=self.isolate_failures)
        models = []
        for result in results:
            if isinstance(result, BaseException):
                # Construction failures are already logged by the registry
                logger.debug(f"Skipping failed model during {operation}: {result}")
                continue
            models.append(result)
        return models
        
    def _begin(self):
        self._active_restores += 1
        self.registry.reconciling = True
        
    def _end(self):
        self._active_restores -= 1
        self.registry.reconciling = self._active_restores > 0
        
    def _emit(self, event_type: str, data: Dict[str, Any]):
        if self.event_bus is not None:
            self.event_bus.emit(event_type, data, source="reconciler")
            
    def _log_failure(self, task: asyncio.Task):
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            log_error_with_context(logger, error, "widget restore")
            
    def get_stats(self) -> Dict[str, Any]:
        return {
            "reconciling": self.reconciling,
            "active_restores": self._active_restores,
            "restores_started": self.restores_started,
            "restores_completed": self.restores_completed,
            "restores_failed": self.restores_failed,
        }
