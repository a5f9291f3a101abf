"""HTTP gateway for the consensus oracle."""
