from refsnap.refs.registry import BaseRefRegistry, RefRegistry, WeakRefRegistry
from refsnap.refs.resolver import SelectorResolver

__all__ = ["BaseRefRegistry", "RefRegistry", "WeakRefRegistry", "SelectorResolver"]
