def test_public_exports_importable():
    import mocap_tracking
    import mocap_tracking.adapters as adapters
    import mocap_tracking.domain as domain
    import mocap_tracking.scripts as scripts
    import mocap_tracking.usecases as usecases

    # Access exported names to ensure __all__ is correct
    for module in (mocap_tracking, adapters, domain, usecases):
        for name in module.__all__:
            assert hasattr(module, name), "%s.%s" % (module.__name__, name)
    assert hasattr(mocap_tracking, "FrameLoop")
    assert hasattr(domain, "encode_cloud")
    assert scripts.__all__ == []
