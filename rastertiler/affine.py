"""Two dimensional affine transforms between pixel and ground coordinates"""

import dataclasses

from .errors import DegenerateTransformError


@dataclasses.dataclass(frozen=True)
class Affine:
    """Affine transform with coefficients a-f

    Maps (x, y) to (a * x + b * y + c, d * x + e * y + f).
    """

    a: float
    b: float
    c: float
    d: float
    e: float
    f: float

    def __str__(self) -> str:
        return (
            f"Affine(a:{self.a}, b:{self.b}, c:{self.c}, "
            f"d:{self.d}, e:{self.e}, f:{self.f})"
        )

    @staticmethod
    def from_gdal(transform: tuple[float, ...] | list[float]) -> "Affine":
        """Create from a GDAL geotransform (c, a, b, f, d, e)"""
        c, a, b, f, d, e = transform
        return Affine(a, b, c, d, e, f)

    def to_gdal(self) -> tuple[float, float, float, float, float, float]:
        """Return GDAL geotransform ordering of coefficients"""
        return (self.c, self.a, self.b, self.f, self.d, self.e)

    @property
    def determinant(self) -> float:
        return self.a * self.e - self.b * self.d

    def invert(self) -> "Affine":
        """Return the inverse transform

        Raises DegenerateTransformError if the determinant is zero.
        """
        determinant = self.determinant
        if determinant == 0:
            raise DegenerateTransformError(f"{self} is not invertible")

        inv_determinant = 1.0 / determinant
        a = self.e * inv_determinant
        b = -self.b * inv_determinant
        d = -self.d * inv_determinant
        e = self.a * inv_determinant

        return Affine(
            a,
            b,
            -self.c * a - self.f * b,
            d,
            e,
            -self.c * d - self.f * e,
        )

    def multiply(self, x: float, y: float) -> tuple[float, float]:
        """Apply transform to a single coordinate pair"""
        return (
            x * self.a + y * self.b + self.c,
            x * self.d + y * self.e + self.f,
        )

    apply = multiply

    def scale(self, x: float, y: float) -> "Affine":
        """Return a transform with pixel size scaled by (x, y)

        Origin and rotation terms are unchanged.
        """
        return dataclasses.replace(self, a=self.a * x, e=self.e * y)

    def resolution(self) -> tuple[float, float]:
        """Return absolute ground units per pixel in x and y"""
        return abs(self.a), abs(self.e)
