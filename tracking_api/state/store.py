"""SessionStateStore: mapa observable de canales de una sesión.

FUENTE ÚNICA DE VERDAD para lo que ve la UI.

Reglas:
- Un solo escritor por canal (claim_writer), cualquier número de lectores.
- Cada publicación incrementa la versión del canal.
- Fan-out ordenado: todos los observadores ven las versiones de un canal
  en el mismo orden, porque la entrega ocurre bajo el lock del store.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..errors import ConfigurationError
from .channels import Channel

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChannelSnapshot:
    """Valor publicado en un canal junto con su versión."""

    channel: Channel
    value: Any
    version: int


Observer = Callable[[ChannelSnapshot], None]


class ChannelWriter:
    """Handle del único productor de un canal."""

    def __init__(self, store: "SessionStateStore", channel: Channel, owner: str):
        self._store = store
        self._channel = channel
        self._owner = owner

    @property
    def channel(self) -> Channel:
        return self._channel

    @property
    def owner(self) -> str:
        return self._owner

    def publish(self, value: Any) -> ChannelSnapshot:
        return self._store._publish(self, value)

    def current(self) -> Any:
        return self._store.get(self._channel)


class Observation:
    """Registro de un observador; cancel() lo da de baja."""

    def __init__(self, store: "SessionStateStore", channel: Channel, callback: Observer):
        self._store = store
        self._channel = channel
        self._callback = callback
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    def cancel(self) -> None:
        if self._active:
            self._active = False
            self._store._remove_observer(self._channel, self._callback)


class SessionStateStore:
    """Store observable de una sesión activa.

    Uso:
        store = SessionStateStore()
        writer = store.claim_writer(Channel.ALERTS, owner="alert-aggregator")
        store.observe(Channel.ALERTS, lambda snap: render(snap.value))
        writer.publish(("CO2: 1250 ppm exceeds danger threshold",))
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._snapshots: Dict[Channel, ChannelSnapshot] = {}
        self._versions: Dict[Channel, int] = {}
        self._observers: Dict[Channel, List[Observer]] = {}
        self._writers: Dict[Channel, ChannelWriter] = {}

    def claim_writer(self, channel: Channel, owner: str) -> ChannelWriter:
        """Reserva el canal para un productor.

        Raises:
            ConfigurationError: si el canal ya tiene escritor.
        """
        channel = Channel(channel)
        with self._lock:
            current = self._writers.get(channel)
            if current is not None:
                raise ConfigurationError(
                    f"Channel '{channel.value}' already written by '{current.owner}', "
                    f"'{owner}' cannot claim it"
                )
            writer = ChannelWriter(self, channel, owner)
            self._writers[channel] = writer
            logger.debug("[SESSION] writer claimed channel=%s owner=%s", channel.value, owner)
            return writer

    def release_writer(self, writer: ChannelWriter) -> None:
        with self._lock:
            if self._writers.get(writer.channel) is writer:
                del self._writers[writer.channel]

    def writer_of(self, channel: Channel) -> Optional[str]:
        with self._lock:
            writer = self._writers.get(Channel(channel))
            return writer.owner if writer else None

    def observe(self, channel: Channel, callback: Observer, replay: bool = True) -> Observation:
        """Registra un observador.

        Si ``replay`` y el canal tiene valor, se entrega inmediatamente la
        instantánea actual (semántica de LiveData).
        """
        channel = Channel(channel)
        with self._lock:
            self._observers.setdefault(channel, []).append(callback)
            current = self._snapshots.get(channel)
            if replay and current is not None:
                self._deliver(callback, current)
        return Observation(self, channel, callback)

    def get(self, channel: Channel, default: Any = None) -> Any:
        with self._lock:
            snap = self._snapshots.get(Channel(channel))
            return snap.value if snap is not None else default

    def snapshot(self, channel: Channel) -> Optional[ChannelSnapshot]:
        with self._lock:
            return self._snapshots.get(Channel(channel))

    def snapshot_all(self) -> Dict[str, Any]:
        """Valores actuales de todos los canales con dato."""
        with self._lock:
            return {ch.value: snap.value for ch, snap in self._snapshots.items()}

    def version(self, channel: Channel) -> int:
        with self._lock:
            return self._versions.get(Channel(channel), 0)

    def reset(self) -> None:
        """Limpia todos los canales (fin de sesión / logout).

        Los observadores reciben una instantánea con valor None.
        """
        with self._lock:
            cleared = list(self._snapshots.keys())
            self._snapshots.clear()
            for channel in cleared:
                version = self._versions.get(channel, 0) + 1
                self._versions[channel] = version
                snap = ChannelSnapshot(channel=channel, value=None, version=version)
                for callback in list(self._observers.get(channel, [])):
                    self._deliver(callback, snap)
        logger.info("[SESSION] store reset channels=%d", len(cleared))

    def _publish(self, writer: ChannelWriter, value: Any) -> ChannelSnapshot:
        with self._lock:
            if self._writers.get(writer.channel) is not writer:
                raise ConfigurationError(
                    f"'{writer.owner}' is not the writer of channel '{writer.channel.value}'"
                )
            version = self._versions.get(writer.channel, 0) + 1
            self._versions[writer.channel] = version
            snap = ChannelSnapshot(channel=writer.channel, value=value, version=version)
            self._snapshots[writer.channel] = snap
            for callback in list(self._observers.get(writer.channel, [])):
                self._deliver(callback, snap)
            return snap

    def _remove_observer(self, channel: Channel, callback: Observer) -> None:
        with self._lock:
            observers = self._observers.get(channel, [])
            if callback in observers:
                observers.remove(callback)

    @staticmethod
    def _deliver(callback: Observer, snap: ChannelSnapshot) -> None:
        try:
            callback(snap)
        except Exception:
            logger.exception(
                "[SESSION] observer failed channel=%s version=%d",
                snap.channel.value,
                snap.version,
            )
