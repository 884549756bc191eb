"""Line item targeting criteria: schema, builder and executor."""
