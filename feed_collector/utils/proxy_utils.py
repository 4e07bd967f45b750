"""
Proxy Utilities

Builds requests sessions for feed downloads and summary calls, routing
traffic through a configured proxy when one is enabled.
"""

import logging
import requests
from typing import Optional, Dict, Tuple

logger = logging.getLogger(__name__)

SUPPORTED_PROTOCOLS = ('http', 'https', 'socks5')


class ProxyConfig:
    """
    Manages proxy configuration for outgoing HTTP requests.
    """

    def __init__(self, proxy_config: Optional[Dict] = None):
        """
        Initialize proxy configuration.

        Args:
            proxy_config: Proxy configuration dictionary (networking.proxy)
        """
        proxy_config = proxy_config or {}
        self.enabled = bool(proxy_config.get('enabled', False))
        self.host = proxy_config.get('host', 'localhost')
        self.port = proxy_config.get('port', 8081)
        self.protocol = proxy_config.get('protocol', 'http')
        self.username = proxy_config.get('username')
        self.password = proxy_config.get('password')

    @property
    def proxy_url(self) -> Optional[str]:
        """Get proxy URL, or None when the proxy is disabled."""
        if not self.enabled:
            return None

        if self.username and self.password:
            return f"{self.protocol}://{self.username}:{self.password}@{self.host}:{self.port}"
        return f"{self.protocol}://{self.host}:{self.port}"

    @property
    def proxy_dict(self) -> Optional[Dict[str, str]]:
        """Get proxy dictionary for requests."""
        if not self.proxy_url:
            return None
        return {'http': self.proxy_url, 'https': self.proxy_url}


def validate_proxy_settings(proxy_settings: Dict) -> Tuple[bool, str]:
    """
    Validate proxy settings.

    Args:
        proxy_settings: Proxy configuration dictionary

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(proxy_settings, dict):
        return False, "Proxy settings must be a dictionary"

    # If proxy is disabled, it's valid
    if not proxy_settings.get('enabled', False):
        return True, ""

    for field in ('host', 'port'):
        if field not in proxy_settings:
            return False, f"Missing required field: {field}"

    try:
        port = int(proxy_settings['port'])
        if not (1 <= port <= 65535):
            return False, "Port must be between 1 and 65535"
    except (ValueError, TypeError):
        return False, "Port must be a valid integer"

    if proxy_settings.get('protocol', 'http') not in SUPPORTED_PROTOCOLS:
        return False, "Protocol must be 'http', 'https', or 'socks5'"

    # Authentication needs both or neither
    if bool(proxy_settings.get('username')) != bool(proxy_settings.get('password')):
        return False, "Both username and password must be provided for authentication"

    return True, ""


def create_proxy_aware_session(proxy_config: Optional[ProxyConfig] = None,
                               user_agent: Optional[str] = None) -> requests.Session:
    """
    Create a requests session with proxy configuration.

    Args:
        proxy_config: Optional proxy configuration
        user_agent: User-Agent header for every request made with the session

    Returns:
        Configured requests session
    """
    session = requests.Session()

    if proxy_config and proxy_config.enabled:
        session.proxies.update(proxy_config.proxy_dict)
        logger.debug(f"Created proxy-aware session using {proxy_config.host}:{proxy_config.port}")
    else:
        logger.debug("Created session without proxy")

    session.headers.update({
        'User-Agent': user_agent or 'Mozilla/5.0 (compatible; Feed-Collector/1.0)'
    })

    return session
