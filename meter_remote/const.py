"""Constants and defaults for the meter remote client."""

# Backend
DEFAULT_BASE_URL = "http://192.168.1.72:5000"
DEFAULT_REQUEST_TIMEOUT = 15.0  # seconds
DEFAULT_METER_NUMBER = ""

# Backend routes
ROUTE_LOGIN = "/login"
ROUTE_REGISTER = "/register"
ROUTE_CURRENT_POWER = "/api/current_power/{}"
ROUTE_LATEST_READING = "/api/latest-reading/{}"
ROUTE_PORT_REPORT = "/api/port_report/{}"
ROUTE_RELAY_CONTROL = "/api/relay_control"
ROUTE_UPDATE_CONSUMPTION = "/api/update_consumption"
ROUTE_ADMIN_USERS = "/admin/api/users"
ROUTE_ADMIN_USER_UPDATE = "/admin/api/users/{}/update"
ROUTE_ADMIN_USER_DELETE = "/admin/api/users/{}/delete"

# Telemetry
DEFAULT_REFRESH_INTERVAL = 60.0  # seconds

# Notifications
ERROR_TITLE = "Error"
SUCCESS_TITLE = "Success"
MSG_DASHBOARD_FAILED = "Failed to load dashboard data. Please try again."
MSG_RELAY_FAILED = "Failed to toggle relay. Please try again."
MSG_REPORT_FAILED = "Failed to load port report. Please try again."
MSG_RELAY_SUCCESS = "Relay turned {}"

# Report presentation
NOT_AVAILABLE = "N/A"
LABEL_CONNECTED = "Connected"
LABEL_DISCONNECTED = "Disconnected"

# MQTT
DEFAULT_MQTT_TOPIC_PREFIX = "meter"
MQTT_RECONNECT_DELAY = 5  # seconds

# Bridge topic suffixes (relative to <prefix>/<meter_number>)
TOPIC_STATUS = "status"
TOPIC_POWER_CURRENT = "power/current"
TOPIC_POWER_ALLOCATED = "power/allocated"
TOPIC_POWER_CONSUMED = "power/consumed"
TOPIC_READING_CONSUMPTION = "reading/consumption"
TOPIC_READING_VOLTAGE = "reading/voltage"
TOPIC_READING_CURRENT = "reading/current"
TOPIC_READING_TIMESTAMP = "reading/timestamp"
TOPIC_RELAY = "relay"
TOPIC_RELAY_SET = "relay/set"
TOPIC_RELAY_PENDING = "relay/pending"
TOPIC_REFRESHING = "refreshing"
TOPIC_REFRESH = "refresh"
TOPIC_REPORT = "report"
TOPIC_REPORT_REFRESH = "report/refresh"
TOPIC_NOTIFICATION = "notification"

# Persistence
OPTIONS_PATH = "/data/options.json"
SESSION_FILE = "/data/session.json"

# HA Discovery
DEFAULT_HA_DISCOVERY_PREFIX = "homeassistant"
DEVICE_IDENTIFIER = "meter_remote"
DEVICE_NAME = "Power Meter"
DEVICE_MANUFACTURER = "Custom"
DEVICE_MODEL = "Meter Remote v1.0"
