"""Crop widget - NiceGUI image cropper with a pan/zoom-stable selection."""

from .crop_image_widget import CropImageWidget, CropWidgetConfig

__all__ = ["CropImageWidget", "CropWidgetConfig"]
