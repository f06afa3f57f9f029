"""Domain layer: plan values, errors and the pure services over them."""
