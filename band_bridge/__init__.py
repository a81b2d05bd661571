"""Health band telemetry bridge: BLE link, fall countdown, caregiver webhook alerts."""

__version__ = "0.1.0"
