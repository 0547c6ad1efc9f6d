"""MQTT transport for one simulated device."""

import asyncio
import json
import logging
from functools import partial
from typing import Any, Callable, Dict, Optional, Union

import paho.mqtt.client as paho
from paho.mqtt.client import MQTTMessage

from ..config import FleetConfig
from ..const import QOS_AT_LEAST_ONCE
from .exceptions import MqttException

_LOGGER = logging.getLogger(__name__)

RECONNECT_DELAY_SECONDS = 5
MAX_RECONNECT_DELAY_SECONDS = 60
CONNECT_TIMEOUT = 20

Payload = Union[bytes, str, Dict[str, Any]]


def encode_payload(payload: Payload) -> bytes:
    """Serialize a payload for the wire. Mappings are sent as JSON."""
    if isinstance(payload, bytes):
        return payload
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return json.dumps(payload, default=str).encode("utf-8")


class FleetMqttClient:
    """Manages the MQTT connection of one device and hands traffic to the event loop.

    paho-mqtt runs its network loop in a background thread; every callback
    is forwarded with `call_soon_threadsafe`, so the device handlers only
    ever run on the asyncio loop, one at a time.
    """

    __slots__ = (
        "_config",
        "_device_id",
        "_client_id",
        "_mqttc",
        "_loop",
        "_connect_lock",
        "_connected_event",
        "_is_connected",
        "_stopping",
        "_will",
        "_on_connected",
        "_on_disconnected",
        "_on_message_cb",
    )

    def __init__(self, config: FleetConfig, device_id: str) -> None:
        """Initialize the MQTT client.

        Args:
            config: Fleet configuration (broker and credentials)
            device_id: Device ID, also used as MQTT client ID
        """
        self._config = config
        self._device_id = device_id
        self._client_id = device_id
        self._mqttc: Optional[paho.Client] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._connect_lock = asyncio.Lock()
        self._connected_event = asyncio.Event()
        self._is_connected = False
        self._stopping = False
        self._will: Optional[tuple] = None
        self._on_connected: Optional[Callable[[], None]] = None
        self._on_disconnected: Optional[Callable[[], None]] = None
        self._on_message_cb: Optional[Callable[[str, bytes], None]] = None

    @property
    def is_connected(self) -> bool:
        """Check if MQTT is connected."""
        return self._is_connected

    @property
    def client_id(self) -> str:
        return self._client_id

    def set_handlers(
        self,
        on_connected: Callable[[], None],
        on_disconnected: Callable[[], None],
        on_message: Callable[[str, bytes], None],
    ) -> None:
        """Register the device handlers. They are always called on the event loop."""
        self._on_connected = on_connected
        self._on_disconnected = on_disconnected
        self._on_message_cb = on_message

    def set_will(self, topic: str, payload: Payload, qos: int = QOS_AT_LEAST_ONCE, retain: bool = True) -> None:
        """Register the last-will message sent by the broker if the device drops."""
        self._will = (topic, encode_payload(payload), qos, retain)

    async def connect(self) -> None:
        """Establish MQTT connection.

        Raises:
            MqttException: If the broker refuses or does not answer in time
        """
        async with self._connect_lock:
            if self._is_connected:
                if _LOGGER.isEnabledFor(logging.DEBUG):
                    _LOGGER.debug("MQTT already connected for %s", self._device_id)
                return

            self._loop = asyncio.get_running_loop()
            self._stopping = False
            self._connected_event.clear()
            self._mqttc = paho.Client(
                paho.CallbackAPIVersion.VERSION2,
                client_id=self._client_id,
                protocol=paho.MQTTv311,
            )
            if self._config.mqtt_username:
                self._mqttc.username_pw_set(
                    username=self._config.mqtt_username, password=self._config.mqtt_password
                )
            if self._will is not None:
                topic, payload, qos, retain = self._will
                self._mqttc.will_set(topic, payload, qos=qos, retain=retain)
            self._mqttc.reconnect_delay_set(
                min_delay=RECONNECT_DELAY_SECONDS, max_delay=MAX_RECONNECT_DELAY_SECONDS
            )
            self._mqttc.on_connect = self._on_connect
            self._mqttc.on_disconnect = self._on_disconnect
            self._mqttc.on_message = self._on_message

            _LOGGER.info(
                f"MQTT connecting: {self._config.broker_host}:{self._config.broker_port} "
                f"(Client: {self._client_id})"
            )

            try:
                await self._loop.run_in_executor(
                    None,
                    self._mqttc.connect,
                    self._config.broker_host,
                    self._config.broker_port,
                    self._config.mqtt_keepalive,
                )
                self._mqttc.loop_start()
                try:
                    await asyncio.wait_for(self._connected_event.wait(), timeout=CONNECT_TIMEOUT)
                except asyncio.TimeoutError:
                    _LOGGER.error(f"MQTT connection timeout {self._client_id}")
                    raise MqttException("MQTT connection timeout")
                if not self._is_connected:
                    raise MqttException("MQTT connection refused")
                _LOGGER.info(f"MQTT connected successfully {self._client_id}")
            except Exception as exc:
                _LOGGER.error(f"Failed MQTT connect {self._client_id}: {exc}")
                if self._mqttc:
                    try:
                        self._mqttc.loop_stop()
                    except Exception as se:
                        _LOGGER.warning(f"Loop stop error: {se}")
                self._mqttc = None
                self._is_connected = False
                if isinstance(exc, MqttException):
                    raise
                raise MqttException(f"MQTT setup error: {exc}") from exc

    def _call_on_loop(self, callback: Optional[Callable], *args: Any) -> None:
        if callback is None or self._loop is None or self._loop.is_closed():
            return
        self._loop.call_soon_threadsafe(callback, *args)

    def _on_connect(self, client, userdata, flags, reason_code, properties=None) -> None:
        """Callback when connection is established (network thread)."""
        if not reason_code.is_failure:
            _LOGGER.info(f"MQTT connected (rc={reason_code}) {self._client_id}")
            self._is_connected = True
            self._call_on_loop(self._connected_event.set)
            self._call_on_loop(self._on_connected)
        else:
            _LOGGER.error(f"MQTT connection refused {self._client_id}: {reason_code}")
            self._is_connected = False
            self._call_on_loop(self._connected_event.set)

    def _on_disconnect(self, client, userdata, flags, reason_code, properties=None) -> None:
        """Callback when disconnected (network thread). paho reconnects on its own."""
        was_connected = self._is_connected
        self._is_connected = False
        if reason_code == 0 or self._stopping:
            _LOGGER.info(f"MQTT disconnected cleanly {self._client_id}")
        else:
            _LOGGER.warning(f"MQTT unexpected disconnect {self._client_id} ({reason_code})")
        if was_connected:
            self._call_on_loop(self._on_disconnected)

    def _on_message(self, client, userdata, msg: MQTTMessage) -> None:
        """Callback when a message is received (network thread)."""
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "MQTT message received %s: topic='%s' (len: %s)",
                self._client_id,
                msg.topic,
                len(msg.payload or b""),
            )
        self._call_on_loop(self._on_message_cb, msg.topic, bytes(msg.payload or b""))

    def subscribe(self, topic: str, qos: int = QOS_AT_LEAST_ONCE) -> bool:
        """Subscribe to a topic on the live connection."""
        if self._mqttc is None:
            _LOGGER.error(f"MQTT not connected {self._client_id}, cannot subscribe to {topic}")
            return False
        try:
            result, mid = self._mqttc.subscribe(topic, qos)
        except Exception as exc:
            _LOGGER.error(f"MQTT subscribe failed {topic}: {exc}")
            return False
        if _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug(
                "Subscribe %s %s (mid=%s)",
                "OK" if result == paho.MQTT_ERR_SUCCESS else "Failed",
                topic,
                mid,
            )
        return result == paho.MQTT_ERR_SUCCESS

    async def async_publish(
        self, topic: str, payload: Payload, qos: int = QOS_AT_LEAST_ONCE, retain: bool = False
    ) -> bool:
        """Publish a message.

        Returns:
            True if paho accepted the message, False otherwise
        """
        if not self.is_connected or not self._mqttc:
            _LOGGER.error(f"MQTT not connected {self._client_id}, cannot publish to {topic}")
            return False

        try:
            payload_bytes = encode_payload(payload)
            publish_task = partial(
                self._mqttc.publish, topic, payload=payload_bytes, qos=qos, retain=retain
            )
            msg_info = await asyncio.get_running_loop().run_in_executor(None, publish_task)

            if msg_info is None or msg_info.rc != paho.MQTT_ERR_SUCCESS:
                _LOGGER.error(
                    f"MQTT publish failed {self._client_id} on {topic} "
                    f"RC: {msg_info.rc if msg_info else 'Executor Error'}"
                )
                return False
            if _LOGGER.isEnabledFor(logging.DEBUG):
                _LOGGER.debug("Publish OK %s (mid=%s) %s", topic, msg_info.mid, self._client_id)
            return True
        except (TypeError, ValueError) as exc:
            _LOGGER.error(f"Invalid payload for {topic} {self._client_id}: {exc}")
            return False
        except Exception as exc:
            _LOGGER.error(f"Failed MQTT publish {self._client_id}: {exc}")
            return False

    async def disconnect(self) -> None:
        """Disconnect the MQTT client."""
        _LOGGER.info(f"Disconnecting MQTT {self._client_id}")
        self._stopping = True
        self._connected_event.set()

        mqttc_to_disconnect = None
        async with self._connect_lock:
            if self._mqttc:
                mqttc_to_disconnect = self._mqttc
                self._mqttc = None

        if mqttc_to_disconnect:
            loop = asyncio.get_running_loop()
            try:
                await loop.run_in_executor(None, mqttc_to_disconnect.disconnect)
                await loop.run_in_executor(None, mqttc_to_disconnect.loop_stop)
                _LOGGER.info(f"MQTT client disconnected {self._client_id}")
            except Exception as exc:
                _LOGGER.warning(f"Error during MQTT disconnect {self._client_id}: {exc}")
        elif _LOGGER.isEnabledFor(logging.DEBUG):
            _LOGGER.debug("MQTT client already None %s", self._client_id)

        if self._is_connected:
            self._is_connected = False
            if self._on_disconnected is not None:
                self._on_disconnected()
