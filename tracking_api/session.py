"""TrackingSession: raíz de composición de una sesión activa.

Una instancia por sesión (no hay singletons de estado). close() cancela
suscripciones, vacía historiales y canales, y detiene los hilos: MQTT,
liveness, notificaciones y el hilo dueño.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

from common.config import Settings

from .alerts import AggregatorConfig, AlertAggregator
from .classification import ThresholdEvaluator
from .errors import SubscriptionError
from .incidents import (
    IncidentFeed,
    IncidentReporter,
    IncidentStateTracker,
    IncidentStore,
    InMemoryIncidentStore,
    ResolutionLedger,
)
from .notifications import (
    BackgroundNotificationSink,
    EmailNotifier,
    NotificationChannel,
    PushNotifier,
)
from .sensors import SensorFeedHandler
from .state import Channel, OwnerDispatcher, SessionStateStore

logger = logging.getLogger(__name__)

LIVENESS_INTERVAL_SECONDS = 5.0


def build_incident_store(settings: Settings) -> IncidentStore:
    if settings.incident_store == "redis":
        from .incidents.redis_store import RedisIncidentStore

        return RedisIncidentStore.from_url(settings.redis_url)
    return InMemoryIncidentStore()


def build_notifier(settings: Settings) -> BackgroundNotificationSink:
    return BackgroundNotificationSink({
        NotificationChannel.LOCAL: PushNotifier(
            settings.backend_url,
            settings.internal_api_key,
            sensor_id=settings.sensor_id or None,
        ),
        NotificationChannel.EMAIL: EmailNotifier(
            settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_username,
            password=settings.smtp_password,
            from_addr=settings.smtp_from,
            default_recipient=settings.admin_email,
            use_tls=settings.smtp_use_tls,
        ),
    })


class TrackingSession:
    """Conecta evaluador, agregador, tracker, feed y reporter a un store.

    Con ``threaded=False`` no se arranca ningún hilo: el host drena el
    dispatcher con run_pending() (bucle de UI o tests).
    """

    def __init__(
        self,
        settings: Settings,
        store: Optional[IncidentStore] = None,
        notifier: Optional[BackgroundNotificationSink] = None,
        evaluator: Optional[ThresholdEvaluator] = None,
        threaded: bool = True,
        enable_mqtt: bool = False,
    ):
        self.settings = settings
        self.threaded = threaded
        self.state = SessionStateStore()
        self.dispatcher = OwnerDispatcher(name="session")
        self.ledger = ResolutionLedger()
        self.incident_store = store if store is not None else build_incident_store(settings)
        self.notifier = notifier if notifier is not None else build_notifier(settings)
        self.evaluator = evaluator or ThresholdEvaluator()

        self.aggregator = AlertAggregator(
            AggregatorConfig.from_settings(settings),
            writer=self.state.claim_writer(Channel.ALERTS, "alert-aggregator"),
            notifier=self.notifier,
        )
        self.tracker = IncidentStateTracker(
            self.incident_store,
            self.dispatcher,
            status_writer=self.state.claim_writer(Channel.INCIDENT_STATUS, "incident-tracker"),
            notifier=self.notifier,
            ledger=self.ledger,
            admin_email=settings.admin_email,
            on_error=self._on_subscription_error,
        )
        self.feed = IncidentFeed(
            self.incident_store,
            self.dispatcher,
            summaries_writer=self.state.claim_writer(Channel.INCIDENT_SUMMARIES, "incident-feed"),
            notifier=self.notifier,
            ledger=self.ledger,
            admin_email=settings.admin_email,
            query_limit=settings.incident_query_limit,
            summary_cap=settings.incident_summary_cap,
            on_error=self._on_subscription_error,
        )
        self.reporter = IncidentReporter(
            self.incident_store,
            tracker=self.tracker,
            submitted_writer=self.state.claim_writer(Channel.SUBMITTED_INCIDENTS, "incident-reporter"),
            notifier=self.notifier,
            admin_email=settings.admin_email,
            history_cap=settings.submitted_history_cap,
        )
        self.sensor = SensorFeedHandler(
            self.evaluator,
            self.aggregator,
            self.state,
            tracker=self.tracker,
            stale_after_seconds=settings.stale_after_seconds,
        )

        self.receiver = None
        if enable_mqtt:
            from .transports.mqtt import SensorMQTTReceiver

            self.receiver = SensorMQTTReceiver(
                self.dispatcher,
                self.sensor,
                broker_host=settings.mqtt_broker_host,
                broker_port=settings.mqtt_broker_port,
                username=settings.mqtt_username,
                password=settings.mqtt_password,
                topic=settings.mqtt_topic,
                sensor_id=settings.sensor_id or None,
            )

        self._stop_event = threading.Event()
        self._liveness_thread: Optional[threading.Thread] = None
        self._started = False
        self._closed = False
        self.last_error: Optional[SubscriptionError] = None

    def start(self) -> None:
        if self._started:
            return
        self._started = True
        if self.threaded:
            self.notifier.start()
            self.dispatcher.start()
            self._liveness_thread = threading.Thread(
                target=self._liveness_loop,
                daemon=True,
                name="sensor-liveness",
            )
            self._liveness_thread.start()

        if self.settings.sensor_id:
            try:
                self.call(self.feed.start, self.settings.sensor_id)
            except SubscriptionError as e:
                self.last_error = e
                logger.warning("[SESSION] Incident feed unavailable: %s", e)
        else:
            logger.warning("[SESSION] SENSOR_ID not set - incident feed disabled")

        if self.receiver is not None:
            self.receiver.start()
        logger.info(
            "[SESSION] Started sensor=%s policy=%s store=%s",
            self.settings.sensor_id or "-",
            self.aggregator.config.policy.value,
            self.settings.incident_store,
        )

    def call(self, fn: Callable[..., Any], *args: Any, timeout: float = 10.0, **kwargs: Any) -> Any:
        """Ejecuta fn en el hilo dueño y espera su resultado.

        Las excepciones de fn se relanzan en el hilo llamante.
        """
        if not self.threaded or self.dispatcher.is_owner_thread():
            if not self.threaded:
                self.dispatcher.run_pending()
            return fn(*args, **kwargs)

        future: Future = Future()

        def _run():
            try:
                future.set_result(fn(*args, **kwargs))
            except Exception as e:
                future.set_exception(e)

        self.dispatcher.post(_run)
        return future.result(timeout=timeout)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop_event.set()

        if self.receiver is not None:
            self.receiver.stop()
        self.call(self._teardown)
        if self._liveness_thread is not None:
            self._liveness_thread.join(timeout=2.0)
            self._liveness_thread = None
        self.dispatcher.stop(drain=True)
        self.notifier.stop(drain=True)
        logger.info("[SESSION] Closed")

    def _teardown(self) -> None:
        self.tracker.close()
        self.feed.stop()
        self.aggregator.reset()
        self.reporter.reset()
        self.ledger.clear()
        self.state.reset()

    def _liveness_loop(self) -> None:
        while not self._stop_event.wait(LIVENESS_INTERVAL_SECONDS):
            self.dispatcher.post(self.sensor.check_liveness)

    def _on_subscription_error(self, error: SubscriptionError) -> None:
        self.last_error = error

    def __enter__(self) -> "TrackingSession":
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def create_session(settings: Settings, **kwargs: Any) -> TrackingSession:
    session = TrackingSession(settings, **kwargs)
    session.start()
    return session
