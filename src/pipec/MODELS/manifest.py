"""
Models for the declarations of one pipeline manifest.
"""
from typing import List
from pydantic import BaseModel
from .step_declaration import StepDeclaration


class Manifest(BaseModel):
    """
    The services and steps of a pipeline, in manifest order.
    """
    services: List[StepDeclaration] = []
    steps: List[StepDeclaration] = []
