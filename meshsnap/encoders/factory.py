"""Factory for creating format encoders."""

from typing import Any, Dict, Type

from meshsnap.encoders.base import ExportFormat, MeshEncoder
from meshsnap.encoders.gltf import GLBEncoder
from meshsnap.encoders.obj import OBJEncoder
from meshsnap.encoders.stl import STLEncoder


class EncoderFactory:
    """Factory for creating format encoders."""

    _encoders: Dict[str, Type[MeshEncoder]] = {
        "stl": STLEncoder,
        "obj": OBJEncoder,
        "glb": GLBEncoder,
    }

    @classmethod
    def create(cls, format_name: str | ExportFormat, **kwargs: Any) -> MeshEncoder:
        """Create an encoder.

        Args:
            format_name: Format name or ExportFormat member
            **kwargs: Additional arguments for the encoder

        Returns:
            Encoder instance

        Raises:
            ValueError: If the format is unknown
        """
        key = format_name.value if isinstance(format_name, ExportFormat) else str(format_name).lower()
        if key not in cls._encoders:
            available = ", ".join(cls._encoders.keys())
            raise ValueError(f"Unknown export format: {format_name}. Available: {available}")

        return cls._encoders[key](**kwargs)

    @classmethod
    def register(cls, name: str, encoder_class: Type[MeshEncoder]) -> None:
        """Register a new encoder.

        Args:
            name: Format name
            encoder_class: Encoder class
        """
        cls._encoders[name] = encoder_class

    @classmethod
    def available_formats(cls) -> list[str]:
        """Get list of available format names."""
        return list(cls._encoders.keys())
