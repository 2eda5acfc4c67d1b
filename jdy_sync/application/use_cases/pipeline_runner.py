"""
Ejecucion de pipelines: lock por entidad y scheduler periodico.

- Un pipeline nunca corre en paralelo consigo mismo: si al disparar una
  pasada el lock de su entidad esta tomado, la pasada se omite.
- Pipelines de entidades distintas corren en paralelo (un thread cada uno).
- El apagado se senaliza con un threading.Event; la pasada en curso termina
  antes de salir.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Iterator, List, Mapping, Optional

from loguru import logger

from jdy_sync.application.use_cases.pipelines import Pipeline


class PipelineLockManager:
    """
    Gestor de locks por entidad.

    Implementacion:
    - Usa `threading.Lock` por entidad, creado bajo demanda.
    - La adquisicion es no bloqueante: quien llega tarde no espera, omite.
    """

    def __init__(self) -> None:
        self._locks: Dict[str, threading.Lock] = {}
        self._meta_lock = threading.Lock()

    def _get_or_create_lock(self, entity: str) -> threading.Lock:
        """Obtiene o crea el lock de la entidad."""
        with self._meta_lock:
            lock = self._locks.get(entity)
            if lock is None:
                lock = threading.Lock()
                self._locks[entity] = lock
            return lock

    @contextmanager
    def try_lock(self, entity: str) -> Iterator[bool]:
        """
        Context manager que intenta tomar el lock sin bloquear.

        Yields:
            True si se obtuvo el lock, False si la entidad ya esta corriendo

        Ejemplo:
            with locks.try_lock("orders") as acquired:
                if acquired:
                    pipeline.run_once()
        """
        lock = self._get_or_create_lock(entity)
        acquired = lock.acquire(blocking=False)
        try:
            yield acquired
        finally:
            if acquired:
                lock.release()

    def is_running(self, entity: str) -> bool:
        with self._meta_lock:
            lock = self._locks.get(entity)
        return lock is not None and lock.locked()


def run_pass(
    entity: str,
    pipeline: Pipeline,
    locks: PipelineLockManager,
) -> Optional[object]:
    """
    Ejecuta una pasada si la entidad no esta corriendo ya.

    Returns:
        El resumen de la pasada, o None si se omitio o fallo
    """
    log = logger.bind(entity=entity)
    with locks.try_lock(entity) as acquired:
        if not acquired:
            log.warning("Pasada omitida: el pipeline sigue en curso")
            return None
        try:
            return pipeline.run_once()
        except Exception as e:
            # Un error inesperado no debe matar el thread del scheduler
            log.exception(f"Pasada abortada por error inesperado: {e}")
            return None


class PipelineScheduler:
    """
    Un thread por pipeline, disparado cada `interval_s` segundos.
    """

    def __init__(
        self,
        pipelines: Mapping[str, Pipeline],
        *,
        interval_s: float,
        locks: Optional[PipelineLockManager] = None,
        stop_event: Optional[threading.Event] = None,
    ) -> None:
        if interval_s <= 0:
            raise ValueError("interval_s debe ser mayor que 0")
        self._pipelines = dict(pipelines)
        self.interval_s = interval_s
        self.locks = locks or PipelineLockManager()
        self.stop_event = stop_event or threading.Event()
        self._threads: List[threading.Thread] = []

    def _loop(self, entity: str, pipeline: Pipeline) -> None:
        log = logger.bind(entity=entity)
        log.info(f"Scheduler iniciado (cada {self.interval_s}s)")
        while not self.stop_event.is_set():
            run_pass(entity, pipeline, self.locks)
            # wait() devuelve True en cuanto se pide el apagado
            if self.stop_event.wait(self.interval_s):
                break
        log.info("Scheduler detenido")

    def start(self) -> None:
        for entity, pipeline in self._pipelines.items():
            thread = threading.Thread(
                target=self._loop,
                args=(entity, pipeline),
                name=f"sync-{entity}",
                daemon=True,
            )
            self._threads.append(thread)
            thread.start()

    def stop(self, timeout: Optional[float] = None) -> None:
        """Senaliza el apagado y espera a que terminen las pasadas en curso."""
        self.stop_event.set()
        for thread in self._threads:
            thread.join(timeout)
        self._threads.clear()

    def run_forever(self) -> None:
        """Bloquea hasta que se pida el apagado (Ctrl+C o stop_event)."""
        self.start()
        try:
            while not self.stop_event.wait(1.0):
                pass
        except KeyboardInterrupt:
            logger.info("Interrupcion recibida, esperando pasadas en curso...")
        finally:
            self.stop()
