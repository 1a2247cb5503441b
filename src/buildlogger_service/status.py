from __future__ import annotations

from dataclasses import asdict, dataclass

from . import __version__
from .config import load_service_config, load_store_config


@dataclass
class ServiceStatus:
  status: str
  service_name: str
  version: str
  host: str
  port: int
  store_url: str


def get_status() -> dict:
  """
  Return a simple status payload for the buildlogger query service.
  """
  service_cfg = load_service_config()
  store_cfg = load_store_config()

  payload = ServiceStatus(
    status="healthy",
    service_name="buildlogger",
    version=__version__,
    host=service_cfg.host,
    port=service_cfg.port,
    store_url=store_cfg.url,
  )
  return asdict(payload)
