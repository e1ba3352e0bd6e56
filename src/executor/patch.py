"""Strategic merge patch payloads for container resources."""

from typing import Any, Dict

from ..recommender.models import Recommendation
from .quantity import format_cpu, format_memory


def build_resource_patch(rec: Recommendation) -> Dict[str, Any]:
    """Generate a pod patch setting requests and limits of one container.

    The container list is merged by name, so only the recommended container
    needs to be present in the payload.

    Args:
        rec: Recommendation to apply

    Returns:
        Patch data dictionary
    """
    return {
        "spec": {
            "containers": [
                {
                    "name": rec.container_name,
                    "resources": {
                        "requests": {
                            "cpu": format_cpu(rec.cpu_request),
                            "memory": format_memory(rec.mem_request),
                        },
                        "limits": {
                            "cpu": format_cpu(rec.cpu_limit),
                            "memory": format_memory(rec.mem_limit),
                        },
                    },
                }
            ]
        }
    }
