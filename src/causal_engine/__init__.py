"""
Causal Engine - Inference on discrete Bayesian networks.

Learns conditional probability tables from incomplete samples with EM and
answers observational, interventional (do), counterfactual (twin network)
and MAP queries.

Modules:
    errors - Exception hierarchy
    matrix - Labeled numpy-backed matrix
    node - Random variable with CPT and observation counts
    network - Network structure and TGF/NA/SIF ingestion
    probability - Exact inference by enumeration
    interventions - Reversible do/edge/twin-network mutations
    discretise - Control-file driven discretisation of sample tables
    em - Expectation-Maximization parameter learning
    query - One-shot query execution
    config - YAML-backed defaults
    cli - Command-line interface entrypoints
"""

from . import errors
from . import matrix
from . import node
from . import network
from . import probability
from . import interventions
from . import discretise
from . import em
from . import query
from . import config
from . import cli

from .discretise import DiscretisationMethod, DiscretisationRule, read_control_file
from .em import InitialisationMethod, ParameterLearner
from .interventions import Factual, Hypothetical, InterventionManager, NodeRef
from .matrix import LabeledMatrix
from .network import Network, NetworkFormat, format_for_path, read_network
from .node import Node
from .probability import ProbabilityEngine
from .query import QueryExecuter, QueryResult, QueryState

__version__ = "1.0.0"
