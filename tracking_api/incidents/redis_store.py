"""Almacén de incidencias sobre Redis.

Layout:
  incident:<id>                    HASH con el documento
  incidents:sensor:<sensor_id>     ZSET id → created_at (epoch)
  incidents:next_id                contador de ids

Cambios publicados (pub/sub, payload = documento en JSON):
  incident-events:<id>
  incident-events:sensor:<sensor_id>

created_at sale de TIME del servidor, no del reloj local.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import orjson
import redis

from ..errors import SubscriptionError
from .models import Incident, IncidentStatus
from .store import CallbackSubscription, DocumentCallback, ErrorCallback, QueryCallback

logger = logging.getLogger(__name__)

INCIDENT_KEY = "incident:{}"
SENSOR_INDEX_KEY = "incidents:sensor:{}"
ID_COUNTER_KEY = "incidents:next_id"
DOC_CHANNEL = "incident-events:{}"
SENSOR_CHANNEL = "incident-events:sensor:{}"


def _text(value: Any) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8")
    return str(value)


def _decode_hash(raw: Dict[Any, Any]) -> Dict[str, str]:
    return {_text(k): _text(v) for k, v in raw.items()}


class RedisIncidentStore:
    """IncidentStore respaldado por Redis.

    Cada suscripción abre su propio PubSub y lo atiende con
    run_in_thread(); los callbacks llegan desde ese hilo.
    """

    def __init__(self, client: "redis.Redis", sleep_time: float = 0.1):
        self._client = client
        self._sleep_time = sleep_time

    @classmethod
    def from_url(cls, url: str) -> "RedisIncidentStore":
        client = redis.Redis.from_url(
            url,
            decode_responses=False,
            socket_timeout=5.0,
            socket_connect_timeout=5.0,
        )
        logger.info("[REDIS] Incident store at %s", url.split("@")[-1])
        return cls(client)

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as e:
            logger.warning("[REDIS] Ping failed: %s", e)
            return False

    def _server_time(self) -> float:
        seconds, micros = self._client.time()
        return float(seconds) + float(micros) / 1_000_000

    def create_incident(
        self,
        sensor_id: str,
        title: str,
        message: str,
        location: str = "",
    ) -> Incident:
        sensor_id = str(sensor_id)
        try:
            created_at = self._server_time()
            incident_id = f"inc-{self._client.incr(ID_COUNTER_KEY)}"
            doc = {
                "id": incident_id,
                "sensorId": sensor_id,
                "title": title,
                "message": message,
                "location": location,
                "status": IncidentStatus.PENDING.value,
                "resolved": "false",
                "createdAt": repr(created_at),
            }
            payload = orjson.dumps(doc)

            pipe = self._client.pipeline()
            pipe.hset(INCIDENT_KEY.format(incident_id), mapping=doc)
            pipe.zadd(SENSOR_INDEX_KEY.format(sensor_id), {incident_id: created_at})
            pipe.publish(DOC_CHANNEL.format(incident_id), payload)
            pipe.publish(SENSOR_CHANNEL.format(sensor_id), payload)
            pipe.execute()
        except redis.RedisError as e:
            raise SubscriptionError(
                f"Could not create incident for sensor {sensor_id}: {e}",
                sensor_id=sensor_id,
                cause=e,
            ) from e

        logger.info("[REDIS] created incident=%s sensor=%s", incident_id, sensor_id)
        return Incident.from_document(incident_id, doc)

    def get_incident(self, incident_id: str) -> Optional[Incident]:
        try:
            raw = self._client.hgetall(INCIDENT_KEY.format(incident_id))
        except redis.RedisError as e:
            raise SubscriptionError(
                f"Could not read incident {incident_id}: {e}",
                incident_id=incident_id,
                cause=e,
            ) from e
        if not raw:
            return None
        return Incident.from_document(incident_id, _decode_hash(raw))

    def list_incidents(self, sensor_id: str, limit: int) -> List[Incident]:
        sensor_id = str(sensor_id)
        try:
            ids = self._client.zrevrange(SENSOR_INDEX_KEY.format(sensor_id), 0, limit - 1)
        except redis.RedisError as e:
            raise SubscriptionError(
                f"Could not query incidents of sensor {sensor_id}: {e}",
                sensor_id=sensor_id,
                cause=e,
            ) from e

        incidents = []
        for raw_id in ids:
            incident = self.get_incident(_text(raw_id))
            if incident is not None:
                incidents.append(incident)
        return incidents

    def resolve_incident(self, incident_id: str) -> Optional[Incident]:
        incident = self.get_incident(incident_id)
        if incident is None:
            return None
        doc = {
            **incident.to_document(),
            "status": IncidentStatus.RESOLVED.value,
            "resolved": "true",
            "createdAt": repr(incident.created_at.timestamp()) if incident.created_at else "",
        }
        try:
            pipe = self._client.pipeline()
            pipe.hset(
                INCIDENT_KEY.format(incident_id),
                mapping={"status": doc["status"], "resolved": doc["resolved"]},
            )
            payload = orjson.dumps(doc)
            pipe.publish(DOC_CHANNEL.format(incident_id), payload)
            pipe.publish(SENSOR_CHANNEL.format(incident.sensor_id), payload)
            pipe.execute()
        except redis.RedisError as e:
            raise SubscriptionError(
                f"Could not resolve incident {incident_id}: {e}",
                incident_id=incident_id,
                cause=e,
            ) from e
        logger.info("[REDIS] resolved incident=%s", incident_id)
        return Incident.from_document(incident_id, doc)

    def watch_document(
        self,
        incident_id: str,
        on_snapshot: DocumentCallback,
        on_error: ErrorCallback,
    ) -> CallbackSubscription:
        def _handle(message):
            try:
                doc = orjson.loads(message["data"])
            except orjson.JSONDecodeError as e:
                on_error(SubscriptionError(
                    f"Malformed incident event for {incident_id}: {e}",
                    incident_id=incident_id,
                    cause=e,
                ))
                return
            on_snapshot(Incident.from_document(incident_id, doc))

        subscription = self._subscribe(
            DOC_CHANNEL.format(incident_id),
            _handle,
            on_error,
            incident_id=incident_id,
        )
        try:
            current = self.get_incident(incident_id)
        except SubscriptionError:
            subscription.cancel()
            raise
        on_snapshot(current)
        return subscription

    def watch_incidents(
        self,
        sensor_id: str,
        limit: int,
        on_snapshot: QueryCallback,
        on_error: ErrorCallback,
    ) -> CallbackSubscription:
        sensor_id = str(sensor_id)

        def _refresh(_message=None):
            try:
                incidents = self.list_incidents(sensor_id, limit)
            except SubscriptionError as e:
                on_error(e)
                return
            on_snapshot(incidents)

        subscription = self._subscribe(
            SENSOR_CHANNEL.format(sensor_id),
            _refresh,
            on_error,
            sensor_id=sensor_id,
        )
        try:
            incidents = self.list_incidents(sensor_id, limit)
        except SubscriptionError:
            subscription.cancel()
            raise
        on_snapshot(incidents)
        return subscription

    def _subscribe(
        self,
        channel: str,
        handler,
        on_error: ErrorCallback,
        incident_id: Optional[str] = None,
        sensor_id: Optional[str] = None,
    ) -> CallbackSubscription:
        def _exception_handler(ex, pubsub, thread):
            logger.warning("[REDIS] Subscription %s failed: %s", channel, ex)
            thread.stop()
            on_error(SubscriptionError(
                f"Subscription to {channel} lost: {ex}",
                incident_id=incident_id,
                sensor_id=sensor_id,
                cause=ex,
            ))

        try:
            pubsub = self._client.pubsub(ignore_subscribe_messages=True)
            pubsub.subscribe(**{channel: handler})
            thread = pubsub.run_in_thread(
                sleep_time=self._sleep_time,
                daemon=True,
                exception_handler=_exception_handler,
            )
        except redis.RedisError as e:
            raise SubscriptionError(
                f"Could not subscribe to {channel}: {e}",
                incident_id=incident_id,
                sensor_id=sensor_id,
                cause=e,
            ) from e

        def _cancel():
            thread.stop()
            try:
                pubsub.close()
            except redis.RedisError as e:
                logger.debug("[REDIS] Error closing pubsub %s: %s", channel, e)
            logger.debug("[REDIS] Unsubscribed %s", channel)

        logger.debug("[REDIS] Subscribed %s", channel)
        return CallbackSubscription(_cancel)
