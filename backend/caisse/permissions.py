"""
Permission codes and default role mappings.

Codes are dotted ``area.action`` strings. A granted code ending in ``.*``
covers every action of its area (``caisse.*`` matches ``caisse.encaisser``).
"""

from __future__ import annotations

from typing import Iterable, Mapping

# =============================================================================
# PERMISSION CODES
# =============================================================================

class Perm:
    """Permission codes checked by the transport layer."""
    # Cash register
    SELL = "caisse.encaisser"
    CANCEL_SALE = "caisse.annuler_vente"
    GIVE_FUND = "caisse.donner_fond_initial"
    RECEIVE_FUND = "caisse.recevoir_fond"
    CLOSE_SESSION = "caisse.fermer"
    VALIDATE_SESSION = "caisse.valider_fermeture"
    VIEW_SESSIONS = "caisse.voir_sessions"

    # Stock
    VIEW_STOCK = "stock.consulter"
    ADJUST_STOCK = "stock.ajuster"
    COUNT_STOCK = "stock.inventaire"
    SUPPLY = "stock.approvisionner"

    # Member accounts
    VIEW_ACCOUNTS = "comptes.consulter"
    ADJUST_ACCOUNTS = "comptes.ajuster_solde"

    # Accounting
    VIEW_REPORTS = "compta.consulter"


# =============================================================================
# DEFAULT ROLE PERMISSIONS
# =============================================================================

DEFAULT_ROLE_PERMISSIONS: dict[str, list[str]] = {
    "admin": ["caisse.*", "stock.*", "comptes.*", "compta.*"],
    "tresorier": [
        Perm.GIVE_FUND,
        Perm.VALIDATE_SESSION,
        Perm.VIEW_SESSIONS,
        Perm.VIEW_ACCOUNTS,
        "compta.*",
    ],
    "caissier": [
        Perm.SELL,
        Perm.RECEIVE_FUND,
        Perm.CLOSE_SESSION,
        Perm.VIEW_STOCK,
    ],
    "gestionnaire_stock": ["stock.*"],
    "membre": [],
}


def permission_matches(granted: str, required: str) -> bool:
    """True if a granted code (possibly a ``prefix.*`` wildcard) covers ``required``."""
    if granted == required:
        return True
    if granted.endswith(".*"):
        prefix = granted[:-2]
        return required.startswith(prefix + ".")
    return False


def effective_permissions(
    role_permissions: Iterable[str],
    overrides: Mapping[str, bool] | None = None,
) -> set[str]:
    """
    Role permissions plus granted overrides, minus revoked overrides.

    A revocation removes the exact code from the set. Narrowing a wildcard is
    the oracle's job (see permission_service.StaticPermissionOracle.user_can).
    """
    codes = set(role_permissions)
    for code, granted in (overrides or {}).items():
        if granted:
            codes.add(code)
        else:
            codes.discard(code)
    return codes
