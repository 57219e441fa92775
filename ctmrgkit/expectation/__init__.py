from .network_value import network_value, network_value_per_site
