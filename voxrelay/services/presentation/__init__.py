"""Presentation of session status to the operator."""

from voxrelay.services.presentation.status import StatusPresenter

__all__ = ["StatusPresenter"]
