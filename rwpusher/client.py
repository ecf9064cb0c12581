"""HTTP delivery of remote-write payloads."""
import logging
from typing import Dict, Optional, Tuple

import requests
import urllib3

from rwpusher.config import RemoteWriteConfig
from rwpusher.errors import RemoteRejected, TransportError

logger = logging.getLogger(__name__)

REMOTE_WRITE_VERSION = "0.1.0"
DEFAULT_USER_AGENT = f"remotewrite-pusher/{REMOTE_WRITE_VERSION}"


class RemoteWriteClient:
    """
    Sends compressed write requests to a single remote endpoint.

    requests has no whole-request deadline. The request timeout is passed as a
    (connect, read) pair: connecting is bounded by connect_timeout_s (timeout_s
    when unset) and every socket read by timeout_s. A peer that keeps trickling
    bytes can therefore hold one attempt longer than timeout_s in total.
    """

    def __init__(
        self,
        url: str,
        timeout_s: float = 50.0,
        connect_timeout_s: Optional[float] = None,
        insecure_skip_verify: bool = False,
        headers: Optional[Dict[str, str]] = None,
        user_agent: str = DEFAULT_USER_AGENT
    ):
        self.url = url
        self.timeout_s = timeout_s
        self.connect_timeout_s = timeout_s if connect_timeout_s is None else connect_timeout_s
        self.session = requests.Session()
        self.session.verify = not insecure_skip_verify
        self.session.headers.update(headers or {})
        self.session.headers.update({
            "Content-Encoding": "snappy",
            "Content-Type": "application/x-protobuf",
            "User-Agent": user_agent,
            "X-Prometheus-Remote-Write-Version": REMOTE_WRITE_VERSION,
        })

        if insecure_skip_verify:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)
            logger.warning(f"TLS certificate verification disabled for {url}")

    @property
    def timeout(self) -> Tuple[float, float]:
        return self.connect_timeout_s, self.timeout_s

    @classmethod
    def from_config(cls, config: RemoteWriteConfig) -> "RemoteWriteClient":
        return cls(
            url=config.url,
            timeout_s=config.timeout_s,
            connect_timeout_s=config.connect_timeout_s,
            insecure_skip_verify=config.insecure_skip_verify,
            headers=config.headers,
            user_agent=config.user_agent
        )

    def store(self, payload: bytes):
        """
        POST one compressed write request. No retries are attempted.

        Raises:
            TransportError: the endpoint could not be reached in time
            RemoteRejected: the endpoint answered with a non-2xx status
        """
        try:
            response = self.session.post(self.url, data=payload, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            raise TransportError(f"timed out after {self.timeout_s}s sending to {self.url}: {e}") from e
        except requests.exceptions.RequestException as e:
            raise TransportError(f"failed to send to {self.url}: {e}") from e

        if not 200 <= response.status_code < 300:
            raise RemoteRejected(response.status_code, response.text, url=self.url)

        logger.debug(f"Delivered {len(payload)} bytes to {self.url} (HTTP {response.status_code})")

    def close(self):
        self.session.close()
