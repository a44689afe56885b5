"""Factory for device descriptors sent by clients."""

from typing import Optional

from faker import Faker

from sessionguard.domain.value_objects.device import DeviceDescriptor

fake = Faker()


def create_fake_device(name: Optional[str] = None, ip: Optional[str] = None) -> DeviceDescriptor:
    return DeviceDescriptor(
        type=fake.random_element(["desktop", "mobile", "tablet"]),
        browser=fake.random_element(["Firefox", "Chrome", "Safari"]),
        os=fake.random_element(["Linux", "macOS", "Windows", "iOS", "Android"]),
        name=name,
        ip=ip or fake.ipv4(),
    )
