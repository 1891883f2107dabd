"""
2-D structure rendering for generated candidates using RDKit.
"""
import io
from typing import Optional, Tuple

from loguru import logger
from rdkit import Chem
from rdkit.Chem import AllChem, Draw


class StructureRenderError(ValueError):
    """Raised when a SMILES string cannot be parsed for drawing"""


class StructureRenderer:
    """Converts SMILES strings into 2-D diagrams"""

    def __init__(self, size: Tuple[int, int] = (300, 300)):
        self.size = size

    def parse(self, smiles: str) -> Chem.Mol:
        mol = Chem.MolFromSmiles(smiles.strip()) if smiles else None
        if mol is None:
            raise StructureRenderError(f"Invalid SMILES: {smiles!r}")
        return mol

    def to_svg(self, smiles: str, size: Optional[Tuple[int, int]] = None, legend: str = "") -> str:
        """Render as SVG text."""
        width, height = size or self.size
        mol = self.parse(smiles)
        AllChem.Compute2DCoords(mol)

        drawer = Draw.MolDraw2DSVG(width, height)
        drawer.DrawMolecule(mol, legend=legend)
        drawer.FinishDrawing()
        return drawer.GetDrawingText()

    def to_png(self, smiles: str, size: Optional[Tuple[int, int]] = None) -> bytes:
        """Render as PNG bytes."""
        mol = self.parse(smiles)
        img = Draw.MolToImage(mol, size=size or self.size)

        img_bytes = io.BytesIO()
        img.save(img_bytes, format="PNG")
        logger.debug(f"Rendered {smiles} to PNG")
        return img_bytes.getvalue()
