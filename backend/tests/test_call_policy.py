"""
Tests des politiques d'appel : chemin critique vs best-effort.
"""

from unittest.mock import MagicMock

import pytest

from app.exceptions import SyncError
from app.remote.client import RemoteAPIError
from app.services.call_policy import best_effort, critical


def test_critical_retourne_la_valeur():
    func = MagicMock(return_value=3)
    assert critical("lecture", func, 1, key="x") == 3
    func.assert_called_once_with(1, key="x")


def test_critical_propage_l_erreur_d_origine():
    err = RemoteAPIError("Refus.", 409)
    with pytest.raises(RemoteAPIError) as exc:
        critical("démarrage", MagicMock(side_effect=err))
    assert exc.value is err


def test_critical_encapsule_dans_error_cls():
    err = RemoteAPIError("Erreur réseau. Vérifiez votre connexion.")
    with pytest.raises(SyncError) as exc:
        critical("pull du journal", MagicMock(side_effect=err), error_cls=SyncError)
    assert exc.value.__cause__ is err
    assert "pull du journal" in str(exc.value)


def test_critical_ne_reencapsule_pas_une_erreur_du_meme_type():
    err = SyncError("déjà encapsulée")
    with pytest.raises(SyncError) as exc:
        critical("pull", MagicMock(side_effect=err), error_cls=SyncError)
    assert exc.value is err


def test_best_effort_succes():
    outcome = best_effort("heartbeat", MagicMock(return_value="ok"))
    assert outcome.ok is True
    assert outcome.value == "ok"
    assert outcome.error is None


def test_best_effort_absorbe_l_echec(caplog):
    err = RemoteAPIError("Erreur réseau. Vérifiez votre connexion.")

    outcome = best_effort("envoi de position", MagicMock(side_effect=err))

    assert outcome.ok is False
    assert outcome.error is err
    assert "envoi de position" in caplog.text
