"""Network classification for the initial rendition choice.

Maps a connectivity reading (connection type plus cellular generation) to a
coarse network class and recommends a starting quality for it.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from reelcast.modules.transcoding.presets import Quality

logger = logging.getLogger(__name__)


class NetworkClass(str, Enum):
    """Coarse network class."""
    WIFI = "wifi"
    CELL_4G = "4g"
    CELL_3G = "3g"
    CELL_2G = "2g"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class ConnectivityReading:
    """Snapshot of the device connectivity."""
    is_connected: bool
    type: str  # "wifi", "cellular", "ethernet", "none", ...
    cellular_generation: Optional[str] = None  # "2g", "3g", "4g", "5g"


ConnectivityProvider = Callable[[], ConnectivityReading]

RECOMMENDED_QUALITY: dict[NetworkClass, Quality] = {
    NetworkClass.WIFI: Quality.HIGH,
    NetworkClass.CELL_4G: Quality.HIGH,
    NetworkClass.CELL_3G: Quality.MEDIUM,
    NetworkClass.CELL_2G: Quality.LOW,
    NetworkClass.UNKNOWN: Quality.MEDIUM,
}


class NetworkClassifier:
    """Classifies connectivity readings. Never raises."""

    def __init__(self, provider: Optional[ConnectivityProvider] = None):
        """Initialize classifier.

        Args:
            provider: Optional callable returning the current reading; used
                when classify() is called without an explicit reading
        """
        self.provider = provider

    def classify(self, reading: Optional[ConnectivityReading] = None) -> NetworkClass:
        """Classify a connectivity reading.

        Args:
            reading: Reading to classify; read from the provider when omitted

        Returns:
            NetworkClass, UNKNOWN when disconnected or unreadable
        """
        if reading is None:
            if self.provider is None:
                return NetworkClass.UNKNOWN
            try:
                reading = self.provider()
            except Exception as e:
                logger.warning(f"Connectivity reading failed: {e}")
                return NetworkClass.UNKNOWN

        if reading is None or not reading.is_connected:
            return NetworkClass.UNKNOWN

        connection_type = (reading.type or "").lower()
        if connection_type == "wifi":
            return NetworkClass.WIFI

        if connection_type == "cellular":
            generation = (reading.cellular_generation or "").lower()
            if generation in ("4g", "5g"):
                return NetworkClass.CELL_4G
            if generation == "3g":
                return NetworkClass.CELL_3G
            return NetworkClass.CELL_2G

        return NetworkClass.UNKNOWN

    @staticmethod
    def recommend(network_class: "NetworkClass | str") -> Quality:
        """Recommend a starting quality for a network class.

        Args:
            network_class: Network class or its string value

        Returns:
            Recommended quality; MEDIUM for unknown input
        """
        try:
            return RECOMMENDED_QUALITY[NetworkClass(network_class)]
        except ValueError:
            return Quality.MEDIUM

    def recommend_current(self) -> Quality:
        """Classify the provider's current reading and recommend a quality."""
        return self.recommend(self.classify())
