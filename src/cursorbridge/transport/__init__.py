"""Protocol front-ends for the bridge."""
