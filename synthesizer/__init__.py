from .builtin_resources import builtin_registry, register_builtin_resources
from .compiler import CompilationResult, TemplateCompiler
from .composition import (
    CompositeVpcReference,
    CompositeWebTierReference,
    auto_scaling_web_tier,
    calculate_subnet_cidr,
    vpc_with_subnets,
)
from .data_and_types import DuplicatePolicy, ResourceIdentity, TerraformDocument
from .loaders import ResourceSpec, TemplateSpec, load_templates
from .references import ComputedAttribute, ReferenceResolver, ResourceReference, interpolation
from .registry import ResourceDefinition, ResourceRegistry
from .session import SynthesisSession
from .terraform import DocumentSynthesizer
