from .errors import LoaderError
from .flow_loader import load_flow_file, load_flows
from .lens_loader import load_lenses
from .run_store import load_run, save_run

__all__ = ["LoaderError", "load_flow_file", "load_flows", "load_lenses", "load_run", "save_run"]
