"""
Setup file.
"""


from setuptools import find_packages, setup

URL = "https://github.com/nutanix/libvfio-user"
KEYWORDS = "vfio vfio-user libvfio-user meson bindings ctypes libclang build"


if __name__ == "__main__":
    setup(
        name="vfio-user-sys",
        version="0.1.0",
        description="Builds libvfio-user with meson and generates Python bindings for it",
        keywords=KEYWORDS,
        url=URL,
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        python_requires=">=3.10",
        install_requires=[
            "psutil",
            "libclang",
            "meson",
            "ninja",
        ],
        extras_require={
            "test": ["pytest"],
        },
        entry_points={
            "console_scripts": [
                "vfio-user-sys=vfio_user_sys.cli:main",
            ],
        },
        include_package_data=True)
