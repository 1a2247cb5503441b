from __future__ import annotations

import os
from dataclasses import dataclass
from typing import List

DEFAULT_BASE_URL = "https://cedar.mongodb.com"
DEFAULT_STORE_URL = "http://localhost:9090"
DEFAULT_STORE_TIMEOUT_SECONDS = 30.0
DEFAULT_HOST = "localhost"
DEFAULT_PORT = 8080


@dataclass(frozen=True)
class ServiceConfig:
  base_url: str
  host: str
  port: int
  cors_origins: List[str]


@dataclass(frozen=True)
class StoreConfig:
  url: str
  timeout_seconds: float


def load_service_config() -> ServiceConfig:
  """
  Load the service settings from BUILDLOGGER_* environment variables.

  BUILDLOGGER_BASE_URL is the location pagination links are built against.
  BUILDLOGGER_CORS_ORIGINS is a comma-separated list, "*" allows everything.
  """
  raw_port = os.getenv("BUILDLOGGER_PORT")
  try:
    port = int(raw_port) if raw_port else DEFAULT_PORT
  except ValueError:
    port = DEFAULT_PORT

  raw_origins = os.getenv("BUILDLOGGER_CORS_ORIGINS", "*")
  if raw_origins.strip() == "*":
    origins = ["*"]
  else:
    origins = [o.strip() for o in raw_origins.split(",") if o.strip()]

  return ServiceConfig(
    base_url=os.getenv("BUILDLOGGER_BASE_URL", DEFAULT_BASE_URL),
    host=os.getenv("BUILDLOGGER_HOST", DEFAULT_HOST),
    port=port,
    cors_origins=origins or ["*"],
  )


def load_store_config() -> StoreConfig:
  """
  Load the upstream log store location and per-call deadline.
  """
  url = os.getenv("BUILDLOGGER_STORE_URL") or DEFAULT_STORE_URL

  raw = os.getenv("BUILDLOGGER_STORE_TIMEOUT_SECONDS")
  if raw is None:
    return StoreConfig(url=url, timeout_seconds=DEFAULT_STORE_TIMEOUT_SECONDS)

  try:
    timeout = float(raw)
  except ValueError:
    # Fallback to default on invalid input
    return StoreConfig(url=url, timeout_seconds=DEFAULT_STORE_TIMEOUT_SECONDS)

  if timeout < 1:
    timeout = 1.0
  if timeout > 600:
    timeout = 600.0

  return StoreConfig(url=url, timeout_seconds=timeout)
