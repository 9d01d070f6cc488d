"""Data models for App Search entities."""

from .engine import CrawlerConfig, Engine, EngineExport, EngineInfo

__all__ = [
    'CrawlerConfig',
    'Engine',
    'EngineExport',
    'EngineInfo',
]
