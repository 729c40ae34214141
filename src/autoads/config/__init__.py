"""Configurações centralizadas do autoads.

Este módulo exporta:
- Settings: classe de configuração via variáveis de ambiente
- get_settings: função cacheada para obter instância única

Uso típico:
    from autoads.config import get_settings
"""

from autoads.config.settings import (
    WHATSAPP_GROUP_SUFFIX,
    WHATSAPP_USER_SUFFIX,
    Settings,
    get_settings,
)

__all__ = [
    "Settings",
    "get_settings",
    "WHATSAPP_USER_SUFFIX",
    "WHATSAPP_GROUP_SUFFIX",
]
