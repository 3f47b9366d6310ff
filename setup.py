from setuptools import setup, find_packages

setup(
    name="ndvi_gam_trends",
    version="0.1.0",
    description="Posterior simulation and derivative bands for NDVI seasonal GAMs.",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=find_packages(include=['ndvi_gam_trends', 'ndvi_gam_trends.*']),
    install_requires=[
        "numpy",
        "pandas",
        "matplotlib",
        "jax",
        "jaxlib", # jaxlib is often a separate requirement for jax
        "arviz<1.0", # HDI summaries
        "statsmodels", # GLMGam / BSplines smooth fits
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.9",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering",
    ],
)
