# fleet_simulator/const.py
# Topic layout, intervals and wire vocabulary shared by every simulated device

import logging
from typing import Final

DOMAIN: Final = "fleet_simulator"
_LOGGER = logging.getLogger(__package__)

# --- MQTT Constants ---
DEFAULT_BROKER_HOST: Final = "localhost"
DEFAULT_BROKER_PORT: Final = 1883
DEFAULT_MQTT_USERNAME: Final = "admin"
DEFAULT_MQTT_PASSWORD: Final = "admin"
DEFAULT_MQTT_KEEPALIVE: Final = 60
DEFAULT_TOPIC_PREFIX: Final = "devices"

TOPIC_AVAILABILITY_FORMAT: Final = "{prefix}/available/{device_id}"
TOPIC_STATUS_FORMAT: Final = "{prefix}/status/{device_id}"
TOPIC_HEARTBEAT_FORMAT: Final = "{prefix}/heartbeat/{device_id}"
TOPIC_CONFIG_FORMAT: Final = "{prefix}/config/{device_id}"
TOPIC_COMMANDS_FORMAT: Final = "{prefix}/commands/{device_id}"
TOPIC_SCHEDULES_FORMAT: Final = "{prefix}/schedules/{device_id}"
TOPIC_ALERT_FORMAT: Final = "{prefix}/alert/{device_id}"
TOPIC_RUNNING_HOURS_FORMAT: Final = "{prefix}/running_hours/{device_id}"
TOPIC_RESET_RESPONSE_SUFFIX: Final = "component_reset"
TOPIC_SET_HOURS_RESPONSE_SUFFIX: Final = "set_hours"

QOS_AT_MOST_ONCE: Final = 0
QOS_AT_LEAST_ONCE: Final = 1

# --- Fleet Defaults ---
DEFAULT_DEVICE_COUNT: Final = 5
DEFAULT_DEVICE_ID_FORMAT: Final = "STM32-Simulator-{index:03d}"

# --- Intervals (seconds) ---
DEFAULT_HEARTBEAT_INTERVAL: Final = 5.0
DEFAULT_TELEMETRY_INTERVAL: Final = 5.0
DEFAULT_SCHEDULE_CHECK_INTERVAL: Final = 10.0
# One real second equals one simulated running hour
DEFAULT_SIMULATION_SECONDS_PER_HOUR: Final = 1.0

# --- Device Status ---
STATUS_OFFLINE: Final = "offline"
STATUS_ONLINE: Final = "online"
STATUS_RUNNING: Final = "running"
STATUS_RUNNING_PLAN: Final = "running_plan"
STATUS_STOPPED_PLAN: Final = "stopped_plan"

RUNNING_STATUSES: Final = frozenset({STATUS_RUNNING, STATUS_RUNNING_PLAN})

# --- Component Kinds / Status ---
KIND_SENSOR: Final = "sensor"
KIND_ACTUATOR: Final = "actuator"
KIND_INDICATOR: Final = "indicator"
COMPONENT_KINDS: Final = (KIND_SENSOR, KIND_ACTUATOR, KIND_INDICATOR)

COMPONENT_OK: Final = "ok"
COMPONENT_WARNING: Final = "warning"
COMPONENT_FAULT: Final = "fault"
COMPONENT_OBSOLETE: Final = "obsolete"
COMPONENT_STATUSES: Final = (
    COMPONENT_OK,
    COMPONENT_WARNING,
    COMPONENT_FAULT,
    COMPONENT_OBSOLETE,
)

# --- Alert Types ---
ALERT_THRESHOLD_EXCEEDED: Final = "threshold_exceeded"
ALERT_THRESHOLD_RESOLVED: Final = "threshold_resolved"
ALERT_OBSOLESCENCE: Final = "obsolescence"
ALERT_CONFIGURATION_INCOMPLETE: Final = "configuration_incomplete"

# --- Commands ---
CMD_START: Final = "Start"
CMD_STOP: Final = "Stop"
CMD_FOLLOW_SCHEDULE: Final = "Follow_Schedule"
CMD_RESET: Final = "Reset"
CMD_SET_HOURS: Final = "Set_Hours"

# --- Recurrence ---
FREQ_DAILY: Final = "DAILY"
FREQ_WEEKLY: Final = "WEEKLY"
FREQ_MONTHLY: Final = "MONTHLY"
FREQ_ONCE: Final = "ONCE"
DAY_CODES: Final = ("MO", "TU", "WE", "TH", "FR", "SA", "SU")
