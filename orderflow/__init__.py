"""orderflow - order assignment with automatic driver reassignment."""
