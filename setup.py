from setuptools import setup, find_packages

setup(
    name="latent-sampler",
    version="0.1.0",
    description="Deterministic latent-space denoising core for Stable Diffusion style generators",
    author="",
    author_email="",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.9",
    install_requires=[
        "torch>=2.0.0",
        "numpy>=1.24.0",
        "pyyaml>=6.0",
        "pytest>=7.4.0",
    ],
    extras_require={
        "dev": [
            "black>=23.0.0",
            "mypy>=1.5.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "latent-sampler=latent_sampler.cli:main",
        ],
    },
)
