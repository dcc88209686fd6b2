from mlstreamcore.data.instance import DatasetHeader, Instance, mask
from mlstreamcore.data.stream import InstanceStream, check_compatible_header, load_csv

__all__ = [
    "DatasetHeader", "Instance", "mask",
    "InstanceStream", "check_compatible_header", "load_csv",
]
