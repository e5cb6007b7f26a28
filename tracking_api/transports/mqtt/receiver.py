"""Receptor MQTT del feed del sensor usando paho-mqtt.

Flujo:
  MQTT topic breathe/sensors/{id}/readings
  → receiver (este archivo): parseo orjson + validación pydantic
  → OwnerDispatcher.post(SensorFeedHandler.on_packet, ...)

El callback de paho corre en el hilo de red: aquí no se toca estado de
sesión, solo se encola.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import TYPE_CHECKING, Optional

import orjson
import paho.mqtt.client as mqtt

from .validators import validate_sensor_reading

if TYPE_CHECKING:
    from ...sensors.feed_handler import SensorFeedHandler
    from ...state.dispatcher import OwnerDispatcher

logger = logging.getLogger(__name__)

DEFAULT_TOPIC = "breathe/sensors/+/readings"


class SensorMQTTReceiver:
    """Receptor MQTT de paquetes de lecturas.

    Uso:
        receiver = SensorMQTTReceiver(dispatcher, handler, sensor_id="42")
        receiver.start()
    """

    def __init__(
        self,
        dispatcher: "OwnerDispatcher",
        handler: "SensorFeedHandler",
        broker_host: str = "localhost",
        broker_port: int = 1883,
        username: Optional[str] = None,
        password: Optional[str] = None,
        topic: str = DEFAULT_TOPIC,
        sensor_id: Optional[str] = None,
        client_id: str = "breathe-tracking",
    ):
        self._dispatcher = dispatcher
        self._handler = handler
        self.broker_host = broker_host
        self.broker_port = broker_port
        self.username = username
        self.password = password
        self.topic = topic
        self.sensor_id = str(sensor_id) if sensor_id else None
        self.client_id = f"{client_id}-{int(time.time())}"

        self._client: Optional[mqtt.Client] = None
        self._connected = threading.Event()

        # Stats
        self._messages_received = 0
        self._messages_processed = 0
        self._messages_failed = 0
        self._messages_ignored = 0
        self._last_message_at: float = 0

    @property
    def is_connected(self) -> bool:
        return self._connected.is_set()

    def start(self, wait_seconds: float = 5.0) -> bool:
        """Conecta al broker y arranca el loop de red de paho."""
        try:
            self._client = mqtt.Client(
                callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
                client_id=self.client_id,
                protocol=mqtt.MQTTv311,
            )
            self._client.on_connect = self._on_connect
            self._client.on_disconnect = self._on_disconnect
            self._client.on_message = self._on_message

            if self.username and self.password:
                self._client.username_pw_set(self.username, self.password)

            logger.info("[MQTT] Connecting to %s:%d", self.broker_host, self.broker_port)
            self._client.connect(self.broker_host, self.broker_port, keepalive=60)
            self._client.loop_start()
        except (OSError, ValueError) as e:
            logger.error("[MQTT] Start failed: %s", e)
            return False

        if self._connected.wait(wait_seconds):
            logger.info("[MQTT] Started successfully")
            return True
        logger.error("[MQTT] Connection timeout")
        return False

    def stop(self) -> None:
        if self._client is not None:
            self._client.loop_stop()
            self._client.disconnect()
            self._client = None
        self._connected.clear()
        logger.info("[MQTT] Stopped. Stats: %s", self.stats)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None):
        if reason_code == 0:
            self._connected.set()
            client.subscribe(self.topic, qos=1)
            logger.info("[MQTT] Connected, subscribed to %s", self.topic)
        else:
            self._connected.clear()
            logger.error("[MQTT] Connection failed: rc=%s", reason_code)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None):
        self._connected.clear()
        logger.warning("[MQTT] Disconnected (rc=%s)", reason_code)

    def _on_message(self, client, userdata, msg):
        self._messages_received += 1
        self._last_message_at = time.time()

        try:
            try:
                data = orjson.loads(msg.payload)
            except orjson.JSONDecodeError as e:
                logger.warning("[MQTT] Invalid JSON: %s (topic=%s)", e, msg.topic)
                self._messages_failed += 1
                return

            validation = validate_sensor_reading(data)
            if not validation.valid:
                logger.warning("[MQTT] Validation failed: %s (topic=%s)", validation.error, msg.topic)
                self._messages_failed += 1
                return

            payload = validation.payload
            if self.sensor_id and payload.sensor_id != self.sensor_id:
                self._messages_ignored += 1
                return

            readings = payload.to_readings()
            if not readings:
                self._messages_ignored += 1
                return

            self._dispatcher.post(
                self._handler.on_packet,
                readings,
                location=payload.location,
                observed_at=payload.observed_at,
            )
            self._messages_processed += 1

        except Exception as e:
            logger.exception("[MQTT] Processing error: %s (topic=%s)", e, msg.topic)
            self._messages_failed += 1

    @property
    def stats(self) -> dict:
        return {
            "connected": self.is_connected,
            "received": self._messages_received,
            "processed": self._messages_processed,
            "failed": self._messages_failed,
            "ignored": self._messages_ignored,
            "last_message_at": self._last_message_at,
        }
