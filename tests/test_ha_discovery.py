import json

from meter_remote.config import AppConfig
from meter_remote.ha_discovery import HADiscoveryPublisher


class RecordingMQTT:
    def __init__(self):
        self.published = []

    async def publish(self, topic, payload, retain=False):
        self.published.append((topic, payload, retain))


def test_relay_switch_config():
    publisher = HADiscoveryPublisher(AppConfig(), RecordingMQTT(), "12345678")
    configs = {(component, key): config for component, key, config in publisher.configs()}
    relay = configs[("switch", "relay")]
    assert relay["command_topic"] == "meter/12345678/relay/set"
    assert relay["state_topic"] == "meter/12345678/relay"
    assert relay["availability_topic"] == "meter/12345678/status"
    assert configs[("sensor", "voltage")]["unit_of_measurement"] == "V"
    assert ("button", "refresh") in configs


async def test_publish_all_is_retained():
    mqtt = RecordingMQTT()
    publisher = HADiscoveryPublisher(AppConfig(), mqtt, "12345678")
    await publisher.publish_all()
    assert mqtt.published
    assert all(retain for _, _, retain in mqtt.published)
    topic, payload, _ = mqtt.published[0]
    assert topic.startswith("homeassistant/sensor/meter_remote_12345678_")
    assert json.loads(payload)["device"]["identifiers"] == ["meter_remote_12345678"]
