"""Registration strategies and the coordinate bookkeeping around them."""
