from setuptools import setup

version = '1.0'

install_requires = [
    # -*- Extra requirements: -*-
    "numpy",
    ]

tests_require = [
    "pytest>=7",
    ]

setup(name='mcregion',
      version=version,
      description="Python library for reading and writing Minecraft region files",
      long_description=open("./README.txt", "r").read(),
      # Get strings from http://pypi.python.org/pypi?%3Aaction=list_classifiers
      classifiers=[
          "Development Status :: 4 - Beta",
          "Intended Audience :: Developers",
          "Natural Language :: English",
          "Operating System :: OS Independent",
          "Programming Language :: Python :: 3",
          "Topic :: Utilities",
          "License :: OSI Approved :: MIT License",
          ],
      keywords='minecraft region anvil nbt',
      license='MIT License',
      py_modules=["chunkcompress", "level", "nbtree", "regionbase", "regionfile"],
      zip_safe=False,
      python_requires=">=3.8",
      install_requires=install_requires,
      extras_require={"test": tests_require},
      )
