# dns_policy_tester/geo.py
# Version: 1.0.0
# Geographic helpers - IP geolocation, public IP discovery, Tor vantage points

"""
Geographic collaborators

IPGeolocator and PublicIPLookup call small HTTP services through requests and
fall back to fixed labels on any failure. GeoDiversityProvider is the vantage
point capability used by GEOLOCATION tests; the Tor implementation talks to a
local Tor daemon's SOCKS and control ports but never starts or stops it.
"""

import logging
import socket
import struct
from abc import ABC, abstractmethod
from typing import Optional

import requests

from .classification.matching import is_ipv4
from .constants import (
    GEOLOCATION_URL,
    HTTP_TIMEOUT,
    PUBLIC_IP_SERVICES,
    TOR_CHECK_URL,
    TOR_CONTROL_PORT,
    TOR_SOCKET_TIMEOUT,
    TOR_SOCKS_HOST,
    TOR_SOCKS_PORT,
    UNKNOWN_LOCATION,
    UNKNOWN_PUBLIC_IP,
)

logger = logging.getLogger(__name__)

# SOCKS5 constants
SOCKS_VERSION = 0x05
SOCKS_NO_AUTH = 0x00
SOCKS_CMD_RESOLVE = 0xF0  # Tor extension: resolve a name through the circuit
SOCKS_ATYP_IPV4 = 0x01
SOCKS_ATYP_DOMAIN = 0x03
SOCKS_SUCCEEDED = 0x00


class IPGeolocator:
    """Coarse location labels from ipapi.co"""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = HTTP_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def locate(self, ip: str) -> str:
        """
        Return 'City, Region, Country (CC, continent)' for ip.

        Any HTTP, JSON or rate-limit failure yields UNKNOWN_LOCATION.
        """
        if not ip or ip == UNKNOWN_PUBLIC_IP:
            return UNKNOWN_LOCATION
        try:
            response = self.session.get(GEOLOCATION_URL.format(ip=ip), timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Geolocation lookup for {ip} failed: {e}")
            return UNKNOWN_LOCATION

        if not isinstance(data, dict) or data.get("error"):
            logger.warning(f"Geolocation service refused {ip}: {data}")
            return UNKNOWN_LOCATION

        place = ", ".join(
            part for part in (data.get("city"), data.get("region"), data.get("country_name")) if part
        )
        codes = ", ".join(part for part in (data.get("country_code"), data.get("continent_code")) if part)
        if not place:
            return UNKNOWN_LOCATION
        return f"{place} ({codes})" if codes else place


class PublicIPLookup:
    """The address this host appears as on the Internet"""

    def __init__(self, session: Optional[requests.Session] = None, timeout: float = HTTP_TIMEOUT,
                 services=PUBLIC_IP_SERVICES):
        self.session = session or requests.Session()
        self.timeout = timeout
        self.services = tuple(services)

    def get_public_ip(self) -> str:
        for url in self.services:
            try:
                response = self.session.get(url, timeout=self.timeout)
                response.raise_for_status()
            except requests.RequestException as e:
                logger.debug(f"Public IP service {url} failed: {e}")
                continue
            candidate = response.text.strip()
            if is_ipv4(candidate):
                return candidate
            logger.debug(f"Public IP service {url} returned unexpected body: {candidate[:40]}")
        logger.warning("Could not determine public IP address")
        return UNKNOWN_PUBLIC_IP


class GeoDiversityProvider(ABC):
    """Optional capability that lets a test resolve from different locations"""

    @abstractmethod
    def is_available(self) -> bool:
        pass

    @abstractmethod
    def current_vantage_point_id(self) -> str:
        pass

    @abstractmethod
    def resolve_through_vantage_point(self, name: str) -> Optional[str]:
        """Resolve name from the current vantage point, None on failure"""
        pass

    @abstractmethod
    def rotate_vantage_point(self) -> bool:
        """Request a new vantage point; True if the request was accepted"""
        pass


class TorVantagePointProvider(GeoDiversityProvider):
    """Vantage points backed by a running Tor daemon"""

    def __init__(
        self,
        socks_host: str = TOR_SOCKS_HOST,
        socks_port: int = TOR_SOCKS_PORT,
        control_port: int = TOR_CONTROL_PORT,
        control_password: str = "",
        session: Optional[requests.Session] = None,
        timeout: float = TOR_SOCKET_TIMEOUT,
    ):
        self.socks_host = socks_host
        self.socks_port = socks_port
        self.control_port = control_port
        self.control_password = control_password
        self.timeout = timeout
        self.session = session or requests.Session()
        proxy = f"socks5h://{socks_host}:{socks_port}"
        self.proxies = {"http": proxy, "https": proxy}

    def _connect(self, port: int) -> socket.socket:
        return socket.create_connection((self.socks_host, port), self.timeout)

    def is_available(self) -> bool:
        try:
            conn = self._connect(self.socks_port)
        except OSError as e:
            logger.info(f"Tor SOCKS port {self.socks_host}:{self.socks_port} unavailable: {e}")
            return False
        conn.close()
        return True

    def current_vantage_point_id(self) -> str:
        """Exit relay address as seen by check.torproject.org"""
        try:
            response = self.session.get(TOR_CHECK_URL, proxies=self.proxies, timeout=self.timeout)
            response.raise_for_status()
            data = response.json()
        except (requests.RequestException, ValueError) as e:
            logger.warning(f"Could not determine Tor exit IP: {e}")
            return UNKNOWN_PUBLIC_IP
        return str(data.get("IP", UNKNOWN_PUBLIC_IP))

    def resolve_through_vantage_point(self, name: str) -> Optional[str]:
        try:
            encoded = name.encode("idna")
        except UnicodeError as e:
            logger.warning(f"Cannot encode {name} for SOCKS resolve: {e}")
            return None
        if len(encoded) > 255:
            logger.warning(f"Name too long for SOCKS resolve: {name}")
            return None

        try:
            with self._connect(self.socks_port) as conn:
                conn.sendall(bytes([SOCKS_VERSION, 1, SOCKS_NO_AUTH]))
                greeting = self._recv_exact(conn, 2)
                if greeting[1] != SOCKS_NO_AUTH:
                    logger.warning("Tor SOCKS port requires authentication")
                    return None

                request = bytes([SOCKS_VERSION, SOCKS_CMD_RESOLVE, 0x00, SOCKS_ATYP_DOMAIN, len(encoded)])
                conn.sendall(request + encoded + struct.pack("!H", 0))

                header = self._recv_exact(conn, 4)
                if header[1] != SOCKS_SUCCEEDED:
                    logger.debug(f"Tor resolve of {name} failed with SOCKS reply {header[1]}")
                    return None
                if header[3] != SOCKS_ATYP_IPV4:
                    logger.debug(f"Tor resolve of {name} returned address type {header[3]}")
                    return None
                address = self._recv_exact(conn, 4)
                self._recv_exact(conn, 2)
        except OSError as e:
            logger.warning(f"Tor resolve of {name} failed: {e}")
            return None

        return socket.inet_ntoa(address)

    def rotate_vantage_point(self) -> bool:
        try:
            with self._connect(self.control_port) as conn:
                conn.sendall(f'AUTHENTICATE "{self.control_password}"\r\n'.encode())
                if not conn.recv(1024).startswith(b"250"):
                    logger.warning("Tor control port authentication failed")
                    return False
                conn.sendall(b"SIGNAL NEWNYM\r\n")
                accepted = conn.recv(1024).startswith(b"250")
        except OSError as e:
            logger.warning(f"Could not signal Tor for a new circuit: {e}")
            return False

        if accepted:
            logger.info("Requested new Tor circuit")
        return accepted

    @staticmethod
    def _recv_exact(conn: socket.socket, size: int) -> bytes:
        data = b""
        while len(data) < size:
            chunk = conn.recv(size - len(data))
            if not chunk:
                raise ConnectionError("SOCKS connection closed early")
            data += chunk
        return data
